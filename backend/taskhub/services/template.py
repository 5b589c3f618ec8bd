"""Task templates and creating tasks from them."""

import math
from datetime import timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import get_settings
from taskhub.db.session import commit_or_raise
from taskhub.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskhub.models.task import TASK_PRIORITIES, Task
from taskhub.models.template import TEMPLATE_CATEGORIES, TaskTemplate
from taskhub.services import progress as calculator
from taskhub.services.task_lifecycle import TaskLifecycleService
from taskhub.utils import clock

logger = structlog.get_logger()

UPDATABLE_FIELDS = (
    "name",
    "description",
    "category",
    "default_priority",
    "default_due_days",
    "todo_checklist",
    "tags",
    "attachment_template",
    "is_public",
)


def _clean(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate template fields that are present in ``fields``."""
    cleaned: dict[str, Any] = {}
    if "name" in fields:
        name = fields["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Template name is required", field="name")
        cleaned["name"] = name.strip()
    if "category" in fields:
        if fields["category"] not in TEMPLATE_CATEGORIES:
            raise ValidationError(
                f"category must be one of {', '.join(TEMPLATE_CATEGORIES)}", field="category"
            )
        cleaned["category"] = fields["category"]
    if "default_priority" in fields:
        if fields["default_priority"] not in TASK_PRIORITIES:
            raise ValidationError(
                f"defaultPriority must be one of {', '.join(TASK_PRIORITIES)}",
                field="default_priority",
            )
        cleaned["default_priority"] = fields["default_priority"]
    if "default_due_days" in fields:
        days = fields["default_due_days"]
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError(
                "defaultDueDays must be a non-negative integer", field="default_due_days"
            )
        cleaned["default_due_days"] = days
    if "todo_checklist" in fields:
        cleaned["todo_checklist"] = calculator.normalize_checklist(fields["todo_checklist"])
    for name in ("tags", "attachment_template"):
        if name in fields:
            value = fields[name]
            if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
                raise ValidationError(f"{name} must be an array of strings", field=name)
            cleaned[name] = list(value)
    if "description" in fields:
        cleaned["description"] = fields["description"]
    if "is_public" in fields:
        cleaned["is_public"] = bool(fields["is_public"])
    return cleaned


class TemplateService:
    """CRUD for templates plus task instantiation."""

    def __init__(self, db: AsyncSession, lifecycle: TaskLifecycleService | None = None):
        self.db = db
        self.lifecycle = lifecycle or TaskLifecycleService(db)

    async def create(self, creator_id: UUID, **fields: Any) -> TaskTemplate:
        if "name" not in fields:
            raise ValidationError("Template name is required", field="name")
        cleaned = _clean({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})

        template = TaskTemplate(
            created_by_id=creator_id,
            category=cleaned.pop("category", "Custom"),
            default_priority=cleaned.pop("default_priority", "Medium"),
            default_due_days=cleaned.pop(
                "default_due_days", get_settings().template_default_due_days
            ),
            todo_checklist=cleaned.pop("todo_checklist", []),
            tags=cleaned.pop("tags", []),
            attachment_template=cleaned.pop("attachment_template", []),
            is_public=cleaned.pop("is_public", False),
            usage_count=0,
            **cleaned,
        )
        self.db.add(template)
        await commit_or_raise(self.db, entity="TaskTemplate")

        logger.info("template_created", template_id=str(template.id), name=template.name)
        return template

    async def list_templates(
        self,
        caller_id: UUID,
        category: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """The caller's own templates plus every public one."""
        criteria = [or_(TaskTemplate.created_by_id == caller_id, TaskTemplate.is_public.is_(True))]
        if category:
            criteria.append(TaskTemplate.category == category)

        total = await self.db.scalar(
            select(func.count(TaskTemplate.id)).where(*criteria)
        ) or 0
        result = await self.db.execute(
            select(TaskTemplate)
            .where(*criteria)
            .order_by(TaskTemplate.usage_count.desc(), TaskTemplate.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "templates": list(result.scalars().all()),
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        }

    async def get(
        self,
        template_id: UUID,
        caller_id: UUID | None = None,
        caller_role: str | None = None,
    ) -> TaskTemplate:
        """Load a template. With a caller, private templates of others stay hidden."""
        template = await self.db.get(TaskTemplate, template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        if caller_id is not None and not (
            template.is_public
            or template.created_by_id == caller_id
            or caller_role == "admin"
        ):
            raise NotFoundError("Template", template_id)
        return template

    async def update(
        self,
        template_id: UUID,
        fields: dict[str, Any],
        caller_id: UUID,
        caller_role: str,
    ) -> TaskTemplate:
        template = await self._get_owned(template_id, caller_id, caller_role)
        cleaned = _clean({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
        for name, value in cleaned.items():
            setattr(template, name, value)
        template.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="TaskTemplate")

        logger.info("template_updated", template_id=str(template_id), fields=sorted(cleaned))
        return template

    async def delete(self, template_id: UUID, caller_id: UUID, caller_role: str) -> None:
        template = await self._get_owned(template_id, caller_id, caller_role)
        await self.db.delete(template)
        await commit_or_raise(self.db, entity="TaskTemplate")
        logger.info("template_deleted", template_id=str(template_id))

    async def create_task_from_template(
        self,
        template_id: UUID,
        caller_id: UUID,
        caller_role: str = "member",
        title: str | None = None,
        due_date: Any = None,
        assigned_to: Any = None,
    ) -> Task:
        """Instantiate a task; title and due date default from the template."""
        template = await self.get(template_id, caller_id, caller_role)
        due = due_date or clock.utcnow() + timedelta(days=template.default_due_days)

        task = await self.lifecycle.create_task(
            title=title or template.name,
            due_date=due,
            creator_id=caller_id,
            assigned_to=assigned_to if assigned_to is not None else [],
            description=template.description,
            priority=template.default_priority,
            todo_checklist=[
                {"text": item["text"], "completed": False} for item in template.todo_checklist
            ],
            attachments=list(template.attachment_template),
            template_id=template.id,
        )

        await self.db.execute(
            update(TaskTemplate)
            .where(TaskTemplate.id == template_id)
            .values(usage_count=TaskTemplate.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        await commit_or_raise(self.db, entity="TaskTemplate")

        logger.info("task_created_from_template", template_id=str(template_id), task_id=str(task.id))
        return task

    async def _get_owned(
        self, template_id: UUID, caller_id: UUID, caller_role: str
    ) -> TaskTemplate:
        template = await self.get(template_id)
        if template.created_by_id != caller_id and caller_role != "admin":
            raise ForbiddenError("Not authorized to modify this template")
        return template
