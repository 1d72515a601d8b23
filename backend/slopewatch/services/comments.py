"""Comments on slopes, with up to five attached images each.

Comments hang off a slope's history number. Attached images go through the
same upload acceptance as slope photos but with the comment limits (JPEG,
PNG or GIF, 5 MB each, five per comment). Every change to a comment's image
list is mirrored into the comment shadow store; deleting a comment records
an empty list.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from slopewatch.core import errors
from slopewatch.db import models as db_models
from slopewatch.services import uploads

if TYPE_CHECKING:
    import datetime
    from collections.abc import Callable, Sequence

    from slopewatch.core import config
    from slopewatch.db import stores as db_stores
    from slopewatch.services import backups, storage
    from slopewatch.services.tokens import AccessClaims

logger = logging.getLogger(__name__)

COMMENT_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif"})


class CommentService:
    """Lists, adds, edits and deletes slope comments."""

    def __init__(
        self,
        stores: db_stores.Stores,
        settings: config.Settings,
        object_store: storage.ObjectStore,
        backup_service: backups.ImageBackupService,
        clock: Callable[[], datetime.datetime] = db_models.utcnow,
    ) -> None:
        self.comments = stores.comments
        self.slopes = stores.slopes
        self.settings = settings
        self.object_store = object_store
        self.backups = backup_service
        self.acceptor = uploads.UploadAcceptor(object_store, clock)
        self.clock = clock

    def list_comments(self, history_number: str) -> list[db_models.Comment]:
        """Comments on one slope, newest first."""
        self._require_slope(history_number)
        return self.comments.for_history(history_number)

    def add_comment(
        self,
        actor: AccessClaims,
        history_number: str,
        content: str | None,
        files: Sequence[uploads.IncomingFile] = (),
    ) -> db_models.Comment:
        """Post a comment with optional images.

        Raises:
            NotFoundFailure: If no slope has this history number.
            ValidationFailure: If the content is blank, too many images are
                attached, or an image is rejected.
        """
        self._require_slope(history_number)
        text = self._require_content(content)
        self._check_image_count(len(files))

        image_urls = self._accept_all(history_number, files)
        now = self.clock()
        comment = db_models.Comment(
            id=str(uuid.uuid4()),
            history_number=history_number,
            user_id=actor.user_id,
            content=text,
            image_urls=image_urls,
            created_at=now,
            updated_at=now,
        )
        try:
            self.comments.add(comment)
        except errors.ServiceError:
            self._discard_all(image_urls)
            raise

        self.backups.upsert_comment_images(
            comment.id,
            history_number,
            comment.image_urls,
        )
        logger.info("Comment %s added to slope %s", comment.id, history_number)
        return comment

    def update_comment(
        self,
        actor: AccessClaims,
        comment_id: str,
        content: str | None,
        keep_urls: Sequence[str] = (),
        files: Sequence[uploads.IncomingFile] = (),
    ) -> db_models.Comment:
        """Edit a comment; only its author may do so.

        The new image list is the kept URLs (in their current order) plus
        the new uploads. URLs not kept are removed from the object store.

        Raises:
            NotFoundFailure: If the comment does not exist.
            AuthFailure: 403 if the actor is not the author.
            ValidationFailure: If the content is blank or the resulting
                image list would be too long.
        """
        comment = self._get(comment_id)
        if comment.user_id != actor.user_id:
            raise errors.forbidden("Only the author can edit this comment")
        text = self._require_content(content)

        keep = set(keep_urls)
        kept = [url for url in comment.image_urls if url in keep]
        dropped = [url for url in comment.image_urls if url not in keep]
        self._check_image_count(len(kept) + len(files))

        new_urls = self._accept_all(comment.history_number, files)
        comment.content = text
        comment.image_urls = [*kept, *new_urls]
        comment.updated_at = self.clock()
        try:
            self.comments.update(comment)
        except errors.ServiceError:
            self._discard_all(new_urls)
            raise

        self._discard_all(dropped)
        self.backups.upsert_comment_images(
            comment.id,
            comment.history_number,
            comment.image_urls,
        )
        logger.info(
            "Comment %s updated (%d image(s) dropped, %d added)",
            comment.id,
            len(dropped),
            len(new_urls),
        )
        return comment

    def delete_comment(self, actor: AccessClaims, comment_id: str) -> None:
        """Delete a comment; allowed to its author and to administrators."""
        comment = self._get(comment_id)
        if comment.user_id != actor.user_id and not actor.is_admin:
            raise errors.forbidden("Only the author can delete this comment")

        self.comments.delete(comment_id)
        self._discard_all(comment.image_urls)
        self.backups.upsert_comment_images(
            comment.id,
            comment.history_number,
            [],
        )
        logger.info("Comment %s deleted", comment.id)

    def _get(self, comment_id: str) -> db_models.Comment:
        comment = self.comments.get(comment_id)
        if comment is None:
            raise errors.NotFoundFailure("Comment not found")
        return comment

    def _require_slope(self, history_number: str) -> None:
        if self.slopes.get_by_history_number(history_number) is None:
            raise errors.NotFoundFailure(
                f"No slope with history number {history_number}",
            )

    @staticmethod
    def _require_content(content: str | None) -> str:
        if not content or not content.strip():
            raise errors.ValidationFailure(
                "Comment content is required",
                details={"content": "required"},
            )
        return content.strip()

    def _check_image_count(self, count: int) -> None:
        limit = self.settings.max_comment_images
        if count > limit:
            raise errors.ValidationFailure(
                f"A comment can have at most {limit} images",
                details={"images": count, "max_images": limit},
            )

    def _accept_all(
        self,
        history_number: str,
        files: Sequence[uploads.IncomingFile],
    ) -> list[str]:
        urls: list[str] = []
        try:
            for incoming in files:
                upload = self.acceptor.accept(
                    incoming,
                    f"comments/{history_number}",
                    max_size=self.settings.max_comment_image_bytes,
                    allowed_types=COMMENT_IMAGE_TYPES,
                )
                urls.append(upload.url)
        except errors.ServiceError:
            self._discard_all(urls)
            raise
        return urls

    def _discard_all(self, urls: Sequence[str]) -> None:
        for url in urls:
            try:
                self.object_store.delete(url)
            except Exception:
                logger.exception("Failed to delete stored image %s", url)
