"""
Tasks and everything that hangs off a task: assignments, activity, comments,
checklists, attached modules and the templates compliance tasks are built from
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Text, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class TaskCategory(Base):
    __tablename__ = "task_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), unique=True, nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Task(Base):
    """
    Unit of work for a client

    Manual tasks are created by staff; COMPLIANCE tasks are generated from
    compliance rules and keep their period fields fixed. SYSTEM_ADHOC tasks
    only exist to carry an ad-hoc charge to invoicing.
    """
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text)

    entity_id = Column(String(36), ForeignKey("entities.id"), index=True)
    category_id = Column(String(36), ForeignKey("task_categories.id"), index=True)
    registration_id = Column(String(36), ForeignKey("entity_registrations.id"))

    status = Column(String(32), nullable=False, default="PENDING", index=True)
    priority = Column(String(16), nullable=False, default="LOW")
    task_source = Column(String(16), nullable=False, default="MANUAL")
    task_type = Column(String(16), nullable=False, default="REGULAR")
    is_system = Column(Boolean, nullable=False, default=False)

    # Billing
    is_billable = Column(Boolean, nullable=False, default=False)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), index=True)
    invoice_internal_number = Column(String(50))

    is_assigned_to_all = Column(Boolean, nullable=False, default=False)

    # Dates
    due_date = Column(Date, index=True)
    start_date = Column(Date)
    end_date = Column(DateTime)

    # Compliance period
    period_start = Column(Date)
    period_end = Column(Date)
    financial_year = Column(String(9))
    compliance_rule_id = Column(String(36))

    comment_count = Column(Integer, nullable=False, default=0)
    last_comment_at = Column(DateTime)

    created_by = Column(String(36), index=True)
    updated_by = Column(String(36))
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime)
    deleted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    entity = relationship("Entity")
    category = relationship("TaskCategory")
    invoice = relationship("Invoice", back_populates="tasks", foreign_keys=[invoice_id])
    assignments = relationship("TaskAssignment", back_populates="task", cascade="all, delete-orphan")
    charges = relationship("TaskCharge", back_populates="task", cascade="all, delete-orphan")

    @property
    def is_adhoc(self) -> bool:
        return self.task_type == "SYSTEM_ADHOC"


class TaskAssignment(Base):
    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "admin_user_id", name="uq_task_assignee"),)

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_user_id = Column(String(36), ForeignKey("admin_users.id"), nullable=False, index=True)
    assignment_source = Column(String(32), nullable=False, default="MANUAL")
    assigned_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)

    task = relationship("Task", back_populates="assignments")
    user = relationship("AdminUser")


class TaskActivityLog(Base):
    __tablename__ = "task_activity_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(String(36))
    action = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    meta = Column(JSON)
    created_at = Column(DateTime, default=utcnow, index=True)


class TaskComment(Base):
    __tablename__ = "task_comments"

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("admin_users.id"), nullable=False)
    message = Column(Text, nullable=False)
    mentions = Column(JSON, default=list)
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, index=True)

    author = relationship("AdminUser")


class TaskChecklistItem(Base):
    __tablename__ = "task_checklist_items"

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    is_done = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)
    created_by = Column(String(36))
    updated_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class TaskModule(Base):
    """
    Billable module attached to a task, for information only

    The module name is copied at attach time. Detached rows are soft deleted.
    """
    __tablename__ = "task_modules"

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    billable_module_id = Column(String(36), ForeignKey("billable_modules.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    remark = Column(Text)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(36))
    updated_by = Column(String(36))
    deleted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    billable_module = relationship("BillableModule")


class TaskTemplate(Base):
    """Title and description used for tasks generated from a compliance rule"""
    __tablename__ = "task_templates"
    __table_args__ = (UniqueConstraint("compliance_rule_id", "title_template", name="uq_template_title_per_rule"),)

    id = Column(String(36), primary_key=True, default=new_id)
    compliance_rule_id = Column(String(36), ForeignKey("compliance_rules.id"), nullable=False, index=True)
    title_template = Column(String(255), nullable=False)
    description_template = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    compliance_rule = relationship("ComplianceRule")
    modules = relationship(
        "TaskTemplateModule", back_populates="template", cascade="all, delete-orphan",
        order_by="TaskTemplateModule.created_at",
    )


class TaskTemplateModule(Base):
    __tablename__ = "task_template_modules"
    __table_args__ = (UniqueConstraint("task_template_id", "billable_module_id", name="uq_template_module"),)

    id = Column(String(36), primary_key=True, default=new_id)
    task_template_id = Column(
        String(36), ForeignKey("task_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    billable_module_id = Column(String(36), ForeignKey("billable_modules.id"), nullable=False, index=True)
    is_optional = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    template = relationship("TaskTemplate", back_populates="modules")
    billable_module = relationship("BillableModule")
