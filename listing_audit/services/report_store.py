"""
Persistence for leads, reports and users.

ReportStore is the narrow async interface the pipeline and the API depend
on. InMemoryReportStore is the bundled backend: process-local, guarded by an
asyncio.Lock, and good for a single worker, tests and the CLI. Records are
keyed by UUID and leads are never deleted.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from listing_audit.models.schemas import AccessType, Lead, Report, User, utcnow
from listing_audit.utils.errors import StoreError
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Abstract Store
# =============================================================================

class ReportStore(ABC):
    """Async CRUD over leads, reports and users."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    # Leads
    @abstractmethod
    async def create_lead(self, lead: Lead) -> Lead:
        ...

    @abstractmethod
    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        ...

    @abstractmethod
    async def update_lead_contact(self, lead_id: UUID, email: str, name: str) -> Optional[Lead]:
        """Set the lead's e-mail and name. Returns None if the lead does not exist."""

    # Reports
    @abstractmethod
    async def create_report(self, report: Report) -> Report:
        ...

    @abstractmethod
    async def get_report(self, report_id: UUID) -> Optional[Report]:
        ...

    @abstractmethod
    async def get_latest_report_for_email(self, email: str) -> Optional[Report]:
        """Most recent report whose lead carries this e-mail."""

    @abstractmethod
    async def list_reports_for_lead(self, lead_id: UUID) -> list[Report]:
        ...

    # Users
    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Raises StoreError(code=EMAIL_EXISTS) on a duplicate e-mail."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def link_guest_leads(self, email: str, user_id: UUID) -> list[UUID]:
        """
        Attach guest leads with this e-mail to a user.

        Only leads without a user are linked; their reports become account
        reports. Returns the ids of the linked leads.
        """

    @abstractmethod
    async def touch_last_login(self, user_id: UUID) -> Optional[User]:
        ...


# =============================================================================
# In-Memory Backend
# =============================================================================

class InMemoryReportStore(ReportStore):
    """
    Process-local store.

    Concurrent updates to the same lead are last-write-wins.

    Example:
        >>> store = InMemoryReportStore()
        >>> lead = await store.create_lead(Lead(audit_type=AuditMode.EXISTING, asin="B08N5WRWNW"))
        >>> await store.get_lead(lead.id) == lead
        True
    """

    def __init__(self):
        self._leads: dict[UUID, Lead] = {}
        self._reports: dict[UUID, Report] = {}
        self._users: dict[UUID, User] = {}
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "memory"

    async def create_lead(self, lead: Lead) -> Lead:
        async with self._lock:
            if lead.id in self._leads:
                raise StoreError(f"Lead {lead.id} already exists", code="DUPLICATE_LEAD")
            self._leads[lead.id] = lead
        logger.debug("Lead created", lead_id=str(lead.id), audit_type=lead.audit_type.value)
        return lead

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        return self._leads.get(lead_id)

    async def update_lead_contact(self, lead_id: UUID, email: str, name: str) -> Optional[Lead]:
        async with self._lock:
            lead = self._leads.get(lead_id)
            if lead is None:
                return None
            updated = lead.model_copy(update={"email": email, "name": name, "updated_at": utcnow()})
            self._leads[lead_id] = updated
        logger.debug("Lead contact updated", lead_id=str(lead_id))
        return updated

    async def create_report(self, report: Report) -> Report:
        async with self._lock:
            if report.lead_id not in self._leads:
                raise StoreError(f"Lead {report.lead_id} not found", code="LEAD_NOT_FOUND")
            if report.id in self._reports:
                raise StoreError(f"Report {report.id} already exists", code="DUPLICATE_REPORT")
            self._reports[report.id] = report
        logger.debug("Report created", report_id=str(report.id), lead_id=str(report.lead_id))
        return report

    async def get_report(self, report_id: UUID) -> Optional[Report]:
        return self._reports.get(report_id)

    async def get_latest_report_for_email(self, email: str) -> Optional[Report]:
        email = email.strip().lower()
        lead_ids = {lead.id for lead in self._leads.values() if (lead.email or "").lower() == email}
        reports = [r for r in self._reports.values() if r.lead_id in lead_ids]
        if not reports:
            return None
        return max(reports, key=lambda r: r.created_at)

    async def list_reports_for_lead(self, lead_id: UUID) -> list[Report]:
        reports = [r for r in self._reports.values() if r.lead_id == lead_id]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    async def create_user(self, user: User) -> User:
        async with self._lock:
            if any(u.email == user.email for u in self._users.values()):
                raise StoreError("An account already exists for this email", code="EMAIL_EXISTS")
            self._users[user.id] = user
        logger.debug("User created", user_id=str(user.id))
        return user

    async def get_user(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        return next((u for u in self._users.values() if u.email == email), None)

    async def link_guest_leads(self, email: str, user_id: UUID) -> list[UUID]:
        email = email.strip().lower()
        async with self._lock:
            linked = [
                lead.id
                for lead in self._leads.values()
                if lead.user_id is None and (lead.email or "").lower() == email
            ]
            for lead_id in linked:
                self._leads[lead_id] = self._leads[lead_id].model_copy(
                    update={"user_id": user_id, "updated_at": utcnow()}
                )
            # Linked reports are replaced with account copies
            for report_id, report in list(self._reports.items()):
                if report.lead_id in linked and report.user_id is None:
                    self._reports[report_id] = report.model_copy(
                        update={"user_id": user_id, "access_type": AccessType.ACCOUNT}
                    )
        logger.info("Guest leads linked", user_id=str(user_id), leads=len(linked))
        return linked

    async def touch_last_login(self, user_id: UUID) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = user.model_copy(update={"last_login": utcnow()})
            self._users[user_id] = updated
        return updated

    def stats(self) -> dict[str, int]:
        return {
            "leads": len(self._leads),
            "reports": len(self._reports),
            "users": len(self._users),
        }


__all__ = ["ReportStore", "InMemoryReportStore"]
