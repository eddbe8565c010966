"""
Comment Service
Task discussion threads with mentions

Author: Back Office Team
Date: 2025-11-07
"""
import logging
from datetime import timedelta
from typing import Dict, List

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.database import utcnow
from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.task import CommentCreate, CommentUpdate
from backoffice.models import AdminUser, Task, TaskComment
from backoffice.services.notification_service import NotificationService
from backoffice.services.task_service import assert_task_visible

logger = logging.getLogger(__name__)

EDIT_WINDOW_HOURS = 48


def serialize_comment(comment: TaskComment) -> Dict:
    author = comment.author
    return {
        "id": comment.id,
        "task_id": comment.task_id,
        "message": comment.message,
        "mentions": comment.mentions or [],
        "is_edited": comment.is_edited,
        "edited_at": comment.edited_at,
        "created_at": comment.created_at,
        "edited_until": comment.created_at + timedelta(hours=EDIT_WINDOW_HOURS) if comment.created_at else None,
        "author": {"id": author.id, "name": author.name, "email": author.email} if author else None,
    }


class CommentService:

    def __init__(self, db: Session):
        self.db = db

    def _get_task(self, task_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not task or task.is_deleted:
            raise NotFoundError("Task not found")
        return task

    def _get_author(self, user_id: str) -> AdminUser:
        user = self.db.get(AdminUser, user_id)
        if not user or user.is_deleted or user.status != "ACTIVE":
            raise ForbiddenError("User inactive or not found")
        return user

    def _get_comment(self, task_id: str, comment_id: str) -> TaskComment:
        comment = self.db.get(TaskComment, comment_id)
        if not comment or comment.task_id != task_id:
            raise NotFoundError("Comment not found")
        return comment

    def ensure_user_can_comment(self, task: Task, user_id: str) -> None:
        """Creator, any staff when assigned to all, otherwise explicit assignees only"""
        if task.created_by == user_id or task.is_assigned_to_all:
            return
        if any(a.admin_user_id == user_id for a in task.assignments):
            return
        raise ForbiddenError("You are not assigned to this task")

    def add_comment(self, task_id: str, payload: CommentCreate, actor: TokenUser) -> Dict:
        task = self._get_task(task_id)
        author = self._get_author(actor.id)
        self.ensure_user_can_comment(task, author.id)

        mentions = list(dict.fromkeys(payload.mentions))
        comment = TaskComment(task_id=task.id, author_id=author.id, message=payload.message, mentions=mentions)
        self.db.add(comment)

        now = utcnow()
        task.last_comment_at = now
        task.comment_count = (task.comment_count or 0) + 1
        self.db.flush()

        # assigned-to-all tasks would notify the whole firm
        if not task.is_assigned_to_all:
            recipients = [uid for uid in mentions if uid != author.id]
            if not recipients:
                recipients = [a.admin_user_id for a in task.assignments if a.admin_user_id != author.id]
            NotificationService(self.db).notify(
                recipients,
                type="TASK_COMMENT",
                title=f"{author.name} commented on '{task.title}'",
                body=payload.message[:280],
                link=f"/tasks/{task.id}?comment={comment.id}",
            )

        self.db.commit()
        self.db.refresh(comment)
        logger.info(f"Comment {comment.id} added to task {task.id} by {author.id}")
        return serialize_comment(comment)

    def edit_comment(self, task_id: str, comment_id: str, payload: CommentUpdate, actor: TokenUser) -> Dict:
        comment = self._get_comment(task_id, comment_id)
        if comment.deleted_at is not None:
            raise ValidationError("Comment has been deleted")
        if comment.author_id != actor.id:
            raise ForbiddenError("You may only edit your own comments")

        now = utcnow()
        if comment.created_at and now > comment.created_at + timedelta(hours=EDIT_WINDOW_HOURS):
            raise ValidationError("Edit window has expired")

        comment.message = payload.message
        comment.is_edited = True
        comment.edited_at = now
        self.db.commit()
        self.db.refresh(comment)
        return serialize_comment(comment)

    def delete_comment(self, task_id: str, comment_id: str, actor: TokenUser) -> bool:
        comment = self._get_comment(task_id, comment_id)
        if comment.author_id != actor.id and not actor.is_super_admin:
            raise ForbiddenError("You cannot delete this comment")

        if comment.deleted_at is not None:
            return True

        comment.deleted_at = utcnow()
        task = self.db.get(Task, task_id)
        task.comment_count = max((task.comment_count or 0) - 1, 0)
        self.db.commit()
        return True

    def list_comments(self, task_id: str, user: TokenUser, page: int = 1, page_size: int = 20) -> Dict:
        assert_task_visible(self._get_task(task_id), user)
        if page_size <= 0 or page_size > 100:
            raise ValidationError("Invalid pagination limit")

        query = self.db.query(TaskComment).filter(
            TaskComment.task_id == task_id,
            TaskComment.deleted_at.is_(None),
        )
        total = query.count()
        rows: List[TaskComment] = (
            query.order_by(TaskComment.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "comments": [serialize_comment(c) for c in rows],
            "pagination": build_pagination(page, page_size, total),
        }
