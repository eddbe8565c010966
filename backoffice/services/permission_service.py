"""
Permission Service
Permission catalog, seeding, and per-user permission sync

Author: Back Office Team
Date: 2025-11-04
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.models import AdminUser, AdminUserPermission, Permission

logger = logging.getLogger(__name__)


# (code, label, category)
PERMISSION_CATALOG: List[Tuple[str, str, str]] = [
    ("admin_users.access", "Access Admin Users (Read only)", "Admin Users"),
    ("admin_users.create", "Create Admin Users", "Admin Users"),
    ("admin_users.update", "Update Admin Users", "Admin Users"),
    ("admin_users.delete", "Delete Admin Users", "Admin Users"),
    ("admin_users.manage", "Manage Admin User Operations", "Admin Users"),

    ("entities.access", "Access Entities (Read only)", "Entities"),
    ("entities.delete", "Delete Entities", "Entities"),
    ("entities.manage", "Create/Update Entities", "Entities"),

    ("tasks.access", "Access Tasks (Read only)", "Tasks"),
    ("tasks.manage", "Create/Update Tasks", "Tasks"),
    ("tasks.delete", "Delete Tasks", "Tasks"),
    ("tasks.charge.manage", "Add/Delete/Update Task Charges", "Tasks"),
    ("task_assignments.manage", "Assign or Reassign Tasks to Users", "Task Assignments"),

    ("bookings.access", "Access Bookings", "Bookings"),
    ("bookings.create_new_link", "Create New Payment Link", "Bookings"),
    ("payment_link.access", "Access to Payment Links", "Bookings"),
    ("bookings.reject_refund", "Reject Booking Refunds", "Bookings"),
    ("bookings.initiate_refund", "Initiate Booking Refunds", "Bookings"),
    ("bookings.assign_member", "Assign Members to Bookings", "Bookings"),
    ("bookings.mark_fulfilled", "Mark Bookings As Fulfilled", "Bookings"),
    ("bookings.unmark_fulfilled", "Un-Mark Bookings As Fulfilled", "Bookings"),

    ("service_pricing.access", "Access Service Pricing", "Service Pricing"),
    ("service_pricing.update", "Update Service Pricing", "Service Pricing"),

    ("payments.access", "Access Payments", "Payments"),

    ("influencers.access", "Access Influencers", "Influencers"),
    ("influencers.create", "Create Influencers", "Influencers"),
    ("influencers.update", "Update Influencers", "Influencers"),
    ("influencers.delete", "Delete Influencers", "Influencers"),

    ("customers.access", "Access Customers", "Customers"),
    ("customers.create", "Create Customers", "Customers"),
    ("customers.update", "Update Customers", "Customers"),

    ("commissions.access", "Access Commissions", "Commissions"),
    ("commissions.update_paid_status", "Update Paid Status", "Commissions"),

    ("coupons.access", "Access Coupons", "Coupons"),
    ("coupons.create", "Create Coupons", "Coupons"),
    ("coupons.update", "Update Coupons", "Coupons"),
    ("coupons.delete", "Delete Coupons", "Coupons"),

    ("firm.access", "Access Task Management Dashboard", "Firm"),
]


class PermissionService:
    """Reads and writes the permission catalog and user grants"""

    def __init__(self, db: Session):
        self.db = db

    def seed(self) -> Dict[str, int]:
        """Upsert every catalog entry by code; safe to run repeatedly"""
        existing = {p.code: p for p in self.db.query(Permission).all()}
        created = updated = 0

        for code, label, category in PERMISSION_CATALOG:
            permission = existing.get(code)
            if permission is None:
                self.db.add(Permission(code=code, label=label, category=category))
                created += 1
            elif permission.label != label or permission.category != category:
                permission.label = label
                permission.category = category
                updated += 1

        self.db.commit()
        logger.info(f"Permission seed complete: {created} created, {updated} updated")
        return {"created": created, "updated": updated, "total": len(PERMISSION_CATALOG)}

    def list_permissions(self, grouped: bool = False):
        permissions = self.db.query(Permission).order_by(Permission.category, Permission.code).all()
        rows = [
            {"id": p.id, "code": p.code, "label": p.label, "category": p.category}
            for p in permissions
        ]
        if not grouped:
            return rows

        groups: Dict[str, list] = {}
        for row in rows:
            groups.setdefault(row["category"], []).append(row)
        return [{"category": category, "permissions": items} for category, items in groups.items()]

    def resolve_codes(self, codes: List[str]) -> List[Permission]:
        """Map codes to Permission rows; any unknown code is a ValidationError"""
        unique_codes = sorted(set(codes))
        if not unique_codes:
            return []

        permissions = self.db.query(Permission).filter(Permission.code.in_(unique_codes)).all()
        found = {p.code for p in permissions}
        invalid = [code for code in unique_codes if code not in found]
        if invalid:
            raise ValidationError(
                f"Invalid permission codes: {', '.join(invalid)}",
                details={"invalid_codes": invalid},
            )
        return permissions

    def sync_user_permissions(
        self,
        user_id: str,
        codes: List[str],
        actor_id: Optional[str] = None,
        commit: bool = True,
    ) -> List[str]:
        """
        Make the user's grants exactly `codes`.

        Only the difference is written: missing grants are added, extra
        grants are removed. Returns the final sorted list of codes.
        """
        user = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        if not user:
            raise NotFoundError("Admin user not found")
        if user.is_deleted:
            raise ValidationError("Cannot change permissions of a deleted user")

        wanted = {p.id: p for p in self.resolve_codes(codes)}
        current = {link.permission_id: link for link in user.permissions}

        for permission_id, link in current.items():
            if permission_id not in wanted:
                user.permissions.remove(link)

        for permission_id, permission in wanted.items():
            if permission_id not in current:
                user.permissions.append(
                    AdminUserPermission(permission_id=permission_id, permission=permission, granted_by=actor_id)
                )

        user.updated_by = actor_id
        if commit:
            self.db.commit()
            self.db.refresh(user)

        logger.info(f"Permissions synced for {user.user_code}: {len(wanted)} granted")
        return sorted(p.code for p in wanted.values())
