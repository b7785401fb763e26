"""Compliance event tracking, GDPR records and regulatory reports."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import enum
import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Optional, Union

from .errors import ComplianceError

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 100_000
DEFAULT_CHECK_INTERVAL = 3600.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class RetentionAction(enum.Enum):
    ARCHIVE = "Archive"
    DELETE = "Delete"
    ANONYMIZE = "Anonymize"


class PrivacyRequestType(enum.Enum):
    DATA_PORTABILITY = "DataPortability"
    DATA_DELETION = "DataDeletion"
    DATA_CORRECTION = "DataCorrection"
    DATA_ACCESS = "DataAccess"


class PrivacyRequestStatus(enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class ComplianceReportType(enum.Enum):
    GDPR = "GDPR"
    PCI = "PCI"
    SOX = "SOX"
    AUDIT_TRAIL = "AuditTrail"
    DATA_RETENTION = "DataRetention"
    SECURITY_INCIDENTS = "SecurityIncidents"


class _Event:
    tag: ClassVar[str]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        """Return the event as ``{tag: fields}`` with JSON-friendly values."""
        fields = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}  # type: ignore[arg-type]
        return {self.tag: _jsonable(fields)}


@dataclass(frozen=True)
class DataAccessEvent(_Event):
    tag: ClassVar[str] = "DataAccess"
    user_id: str
    data_type: str
    purpose: str
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class DataRetentionEvent(_Event):
    tag: ClassVar[str] = "DataRetention"
    data_type: str
    retention_period: timedelta
    action: RetentionAction
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class PrivacyRequestEvent(_Event):
    tag: ClassVar[str] = "PrivacyRequest"
    user_id: str
    request_type: PrivacyRequestType
    status: str
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class AuditTrailEvent(_Event):
    tag: ClassVar[str] = "AuditTrail"
    event_id: str
    user_id: Optional[str]
    action: str
    resource: str
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SecurityIncidentEvent(_Event):
    tag: ClassVar[str] = "SecurityIncident"
    incident_id: str
    severity: str
    description: str
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ComplianceViolationEvent(_Event):
    tag: ClassVar[str] = "ComplianceViolation"
    violation_type: str
    regulation: str
    description: str
    timestamp: datetime = field(default_factory=_now)


ComplianceEvent = Union[
    DataAccessEvent,
    DataRetentionEvent,
    PrivacyRequestEvent,
    AuditTrailEvent,
    SecurityIncidentEvent,
    ComplianceViolationEvent,
]


@dataclass(frozen=True)
class ComplianceSummary:
    total_events: int
    data_access_events: int
    privacy_requests: int
    security_incidents: int
    compliance_violations: int
    retention_actions: int

    @classmethod
    def from_events(cls, events: list[ComplianceEvent]) -> ComplianceSummary:
        def count(kind: type) -> int:
            return sum(1 for event in events if isinstance(event, kind))

        return cls(
            total_events=len(events),
            data_access_events=count(DataAccessEvent),
            privacy_requests=count(PrivacyRequestEvent),
            security_incidents=count(SecurityIncidentEvent),
            compliance_violations=count(ComplianceViolationEvent),
            retention_actions=count(DataRetentionEvent),
        )


@dataclass(frozen=True)
class ComplianceReport:
    report_id: str
    report_type: ComplianceReportType
    period_start: datetime
    period_end: datetime
    events: list[ComplianceEvent]
    summary: ComplianceSummary
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "report_type": self.report_type.value,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "events": [event.to_dict() for event in self.events],
            "summary": dataclasses.asdict(self.summary),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class ConsentRecord:
    user_id: str
    purpose: str
    consent_given: bool
    timestamp: datetime
    expiry: Optional[datetime] = None


@dataclass
class PrivacyRequest:
    request_id: str
    user_id: str
    request_type: PrivacyRequestType
    status: PrivacyRequestStatus
    submitted_at: datetime
    completed_at: Optional[datetime] = None


@dataclass
class GdprCompliance:
    data_processing_purposes: dict[str, str] = field(default_factory=dict)
    consent_records: dict[str, ConsentRecord] = field(default_factory=dict)
    data_retention_policies: dict[str, timedelta] = field(default_factory=dict)
    privacy_requests: list[PrivacyRequest] = field(default_factory=list)


class ComplianceMonitor:
    """Keeps a bounded log of compliance events and GDPR records."""

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
    ) -> None:
        self._events: deque[ComplianceEvent] = deque(maxlen=max_events)
        self._gdpr = GdprCompliance()
        self._check_interval = check_interval
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def events(self) -> tuple[ComplianceEvent, ...]:
        return tuple(self._events)

    @property
    def gdpr(self) -> GdprCompliance:
        return self._gdpr

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start_monitoring(self) -> None:
        """Start the periodic retention and consent checks."""
        if not self.running:
            self._task = asyncio.create_task(self._monitor_loop())
        logger.info("Compliance monitoring started")

    async def stop_monitoring(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            self._perform_data_retention_check()
            self._check_consent_expiry()

    def _perform_data_retention_check(self) -> list[ComplianceEvent]:
        """Return logged events older than their data type's retention policy."""
        logger.debug("Performing data retention check")
        policies = self._gdpr.data_retention_policies
        now = _now()
        overdue = [
            event
            for event in self._events
            if isinstance(event, (DataAccessEvent, DataRetentionEvent))
            and event.data_type in policies
            and now - event.timestamp > policies[event.data_type]
        ]
        if overdue:
            logger.info("%d events exceed their retention period", len(overdue))
        return overdue

    def _check_consent_expiry(self) -> list[str]:
        """Return the keys of consent records whose expiry has passed."""
        logger.debug("Checking consent expiry")
        now = _now()
        expired = [
            key
            for key, record in self._gdpr.consent_records.items()
            if record.expiry is not None and record.expiry < now
        ]
        if expired:
            logger.info("%d consent records have expired", len(expired))
        return expired

    async def record_event(self, event: ComplianceEvent) -> None:
        """Append an event, dropping the oldest once the log is full."""
        self._events.append(event)

        if isinstance(event, DataAccessEvent):
            logger.info(
                "Data access recorded for compliance: user_id=%s data_type=%s purpose=%s",
                event.user_id,
                event.data_type,
                event.purpose,
            )
        elif isinstance(event, PrivacyRequestEvent):
            logger.info(
                "Privacy request recorded: user_id=%s request_type=%s",
                event.user_id,
                event.request_type.value,
            )
        elif isinstance(event, SecurityIncidentEvent):
            logger.warning(
                "Security incident recorded for compliance: incident_id=%s severity=%s",
                event.incident_id,
                event.severity,
            )
        elif isinstance(event, ComplianceViolationEvent):
            logger.error(
                "Compliance violation recorded: violation_type=%s regulation=%s",
                event.violation_type,
                event.regulation,
            )
        else:
            logger.debug("Compliance event recorded: %r", event)

    async def generate_report(
        self,
        report_type: ComplianceReportType,
        start_date: datetime,
        end_date: datetime,
    ) -> ComplianceReport:
        """Report on the events whose timestamps fall within the inclusive range."""
        selected = [e for e in self._events if start_date <= e.timestamp <= end_date]
        return ComplianceReport(
            report_id=str(uuid.uuid4()),
            report_type=report_type,
            period_start=start_date,
            period_end=end_date,
            events=selected,
            summary=ComplianceSummary.from_events(selected),
            generated_at=_now(),
        )

    async def record_consent(
        self,
        user_id: str,
        purpose: str,
        consent_given: bool,
        expiry: Optional[datetime] = None,
    ) -> None:
        self._gdpr.consent_records[f"{user_id}:{purpose}"] = ConsentRecord(
            user_id=user_id,
            purpose=purpose,
            consent_given=consent_given,
            timestamp=_now(),
            expiry=expiry,
        )
        await self.record_event(
            DataAccessEvent(user_id=user_id, data_type="consent", purpose=purpose)
        )

    async def process_privacy_request(
        self, user_id: str, request_type: PrivacyRequestType
    ) -> str:
        """Register a pending privacy request and return its id."""
        request_id = str(uuid.uuid4())
        self._gdpr.privacy_requests.append(
            PrivacyRequest(
                request_id=request_id,
                user_id=user_id,
                request_type=request_type,
                status=PrivacyRequestStatus.PENDING,
                submitted_at=_now(),
            )
        )
        await self.record_event(
            PrivacyRequestEvent(user_id=user_id, request_type=request_type, status="pending")
        )
        return request_id

    async def export_audit_data(self, start_date: datetime, end_date: datetime) -> str:
        """Return an audit-trail report for the range as pretty-printed JSON."""
        report = await self.generate_report(
            ComplianceReportType.AUDIT_TRAIL, start_date, end_date
        )
        try:
            return json.dumps(report.to_dict(), indent=2)
        except (TypeError, ValueError) as exc:
            raise ComplianceError(f"Failed to export audit data: {exc}") from exc