"""
Pipeline orchestrator using LangGraph.

Coordinates the lead-to-report flow: input validation, product-data
scraping, AI analysis, report persistence and e-mail delivery, plus the
e-mail-capture flow that follows a preview.

Features:
    - Stateful execution with LangGraph StateGraph
    - Conditional edges routing each stage to its terminal failure state
    - Per-stage timeouts
    - Stage transitions and analytics events reported to a PipelineObserver
    - Graceful degradation: marketplace scrape hiccups and e-mail failures
      never fail the request
"""

import asyncio
import operator
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Annotated, Callable, Literal, Mapping, Optional, TypedDict, Union
from uuid import UUID, uuid4

from langgraph.graph import END, StateGraph
from pydantic import ValidationError as PydanticValidationError

from listing_audit.analyzers.analysis_engine import ANALYSIS_FAILED_MESSAGE, AnalysisEngine
from listing_audit.config.settings import Settings, get_settings
from listing_audit.extractors import MarketplaceScraper, ProductScraper, SitePageScraper
from listing_audit.models.schemas import (
    AccessType,
    AnalysisResult,
    AuditMode,
    ClientMeta,
    DeliveryMode,
    DeliveryRecord,
    ExistingSellerInput,
    Lead,
    NewSellerInput,
    Report,
    ScrapedProductData,
    ScrapeErr,
    ScrapeErrorCode,
    SuggestionResult,
)
from listing_audit.services.email_service import EmailDispatcher
from listing_audit.services.llm_service import create_claude_service
from listing_audit.services.report_store import InMemoryReportStore, ReportStore
from listing_audit.services.validation_service import InputValidator, is_suspected_bot
from listing_audit.utils.errors import (
    AnalysisError,
    AppError,
    AppTimeoutError,
    BotSuspectedError,
    LeadUpdateError,
    ScrapeFailedError,
    StoreError,
    ValidationError,
)
from listing_audit.utils.observability import PipelineObserver, StructlogObserver


# =============================================================================
# Constants and Configuration
# =============================================================================

# Added to a scraper's own HTTP timeout to bound the whole scrape
SCRAPE_GRACE_SECONDS = 5.0

URL_SCRAPE_FAILED_MESSAGE = "Unable to scrape product data from this URL"
URL_SCRAPE_FAILED_HINT = "Please use the manual input form instead to create your Amazon listing."
INVALID_ASIN_MESSAGE = "Invalid ASIN provided. Please enter a valid 10-character ASIN or Amazon product URL."
PRODUCT_NOT_FOUND_MESSAGE = "Product not found. Please check the ASIN and try again."
LEAD_UPDATE_FAILED_MESSAGE = "Failed to update lead"


class PipelineStatus(str, Enum):
    """Where a run ended."""
    RUNNING = "running"
    SUCCESS = "success"
    BOT_REJECTED = "bot_rejected"
    VALIDATION_FAILED = "validation_failed"
    SCRAPE_TERMINAL_FAILURE = "scrape_terminal_failure"
    ANALYSIS_FAILED = "analysis_failed"
    STORE_FAILED = "store_failed"
    UPDATE_FAILED = "update_failed"


# =============================================================================
# Pipeline State Definitions (TypedDict for LangGraph)
# =============================================================================

NormalizedInput = Union[ExistingSellerInput, NewSellerInput]


class AnalysisState(TypedDict, total=False):
    """
    State of the analysis flow.

    Failed stages put the AppError in `failure` and route to END; the public
    methods re-raise it once the graph returns.
    """
    run_id: str

    # Input
    mode: AuditMode
    raw_fields: dict
    client_meta: ClientMeta
    check_only: bool
    persist: bool

    # Stage outputs
    normalized: NormalizedInput
    access_type: AccessType
    lead: Optional[Lead]
    scraped: Optional[ScrapedProductData]
    scrape_degraded: bool
    result: Optional[AnalysisResult]
    report: Optional[Report]
    delivery: Optional[DeliveryRecord]

    # Status tracking
    status: str
    failure: Optional[AppError]
    errors: Annotated[list[str], operator.add]
    step_timings: dict


class CaptureState(TypedDict, total=False):
    """
    State of the e-mail-capture flow.

    `lead_id` is absent when the visitor only previewed; `preview` is the
    result they were shown, sent instead of a stored report.
    """
    run_id: str
    email: str
    name: str
    lead_id: Optional[UUID]
    mode: DeliveryMode
    preview: Optional[AnalysisResult]
    asin: Optional[str]
    lead: Optional[Lead]
    report: Optional[Report]
    delivery: Optional[DeliveryRecord]
    status: str
    failure: Optional[AppError]
    errors: Annotated[list[str], operator.add]
    step_timings: dict


# =============================================================================
# Outcomes
# =============================================================================

@dataclass
class PipelineOutcome:
    """Result of a successful analysis run."""
    run_id: str
    mode: AuditMode
    result: Optional[AnalysisResult] = None
    scannable: bool = False
    access_type: AccessType = AccessType.GUEST
    scrape_degraded: bool = False
    lead_id: Optional[UUID] = None
    report_id: Optional[UUID] = None
    delivery: Optional[DeliveryRecord] = None
    step_timings: dict[str, int] = field(default_factory=dict)

    @property
    def email_sent(self) -> bool:
        return bool(self.delivery and self.delivery.success)


@dataclass
class CaptureOutcome:
    """
    Result of an e-mail capture. Delivery failures are reported, not raised.

    `has_pdf` says report data was found for the message (a stored report or
    the preview result), independent of whether the send went through.
    """
    lead_id: Optional[UUID]
    delivery: DeliveryRecord
    had_report: bool = False

    @property
    def message_id(self) -> Optional[str]:
        return self.delivery.message_id if self.delivery.success else None

    @property
    def has_pdf(self) -> bool:
        return self.had_report


# =============================================================================
# Decorators for Node Execution
# =============================================================================

def with_timeout(timeout: Union[float, str]):
    """
    Bound an async method by a timeout.

    `timeout` is either seconds or the name of a Settings attribute read from
    `self.settings` at call time. Expiry raises AppTimeoutError.
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            seconds = getattr(self.settings, timeout) if isinstance(timeout, str) else timeout
            try:
                return await asyncio.wait_for(func(self, *args, **kwargs), timeout=seconds)
            except asyncio.TimeoutError:
                raise AppTimeoutError(
                    f"'{func.__name__.strip('_')}' timed out after {seconds:g} seconds",
                    details={"timeout_seconds": seconds},
                )
        return wrapper
    return decorator


def track_timing(func: Callable):
    """Report a node's start, duration and outcome to the observer."""
    @wraps(func)
    async def wrapper(self, state: dict) -> dict[str, Any]:
        stage = func.__name__.strip("_").removesuffix("_node")
        context = {"run_id": state.get("run_id")}
        self.observer.stage_started(stage, **context)
        start_time = time.perf_counter()

        try:
            result = await func(self, state)
        except Exception as e:
            self.observer.stage_failed(stage, e, **context)
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        step_timings = state.get("step_timings", {}).copy()
        step_timings[stage] = duration_ms
        result["step_timings"] = step_timings

        failure = result.get("failure")
        if failure is not None:
            self.observer.stage_failed(stage, failure, duration_ms=duration_ms, **context)
        else:
            self.observer.stage_completed(stage, duration_ms, **context)
        return result

    return wrapper


def _fail(status: PipelineStatus, error: AppError) -> dict[str, Any]:
    return {"status": status.value, "failure": error, "errors": [f"{error.code}: {error.message}"]}


# =============================================================================
# Main Pipeline Class
# =============================================================================

class LeadPipeline:
    """
    LangGraph-based lead-to-report pipeline.

    Collaborators are injected; anything not given is created from settings.
    The analysis engine is created on first use so flows that never reach
    the model (validation failures, check-only previews) work without AI
    credentials.

    Example:
        >>> async with LeadPipeline() as pipeline:
        ...     outcome = await pipeline.preview("existing", {"asin": "B08N5WRWNW", ...}, meta)
        ...     print(outcome.result.score)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        validator: Optional[InputValidator] = None,
        marketplace_scraper: Optional[ProductScraper] = None,
        site_scraper: Optional[ProductScraper] = None,
        engine: Optional[AnalysisEngine] = None,
        store: Optional[ReportStore] = None,
        dispatcher: Optional[EmailDispatcher] = None,
        observer: Optional[PipelineObserver] = None,
    ):
        self.settings = settings or get_settings()
        self.validator = validator or InputValidator()
        self.marketplace_scraper = marketplace_scraper or MarketplaceScraper(self.settings)
        self.site_scraper = site_scraper or SitePageScraper(self.settings)
        self._engine = engine
        self.store = store or InMemoryReportStore()
        self._dispatcher = dispatcher
        self.observer = observer or StructlogObserver()

        self._analysis_graph = self._build_analysis_graph()
        self._capture_graph = self._build_capture_graph()

    async def __aenter__(self) -> "LeadPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def engine(self) -> AnalysisEngine:
        """The analysis engine. Raises ConfigurationError without AI credentials."""
        if self._engine is None:
            self._engine = AnalysisEngine(create_claude_service(self.settings), self.settings)
        return self._engine

    @property
    def dispatcher(self) -> EmailDispatcher:
        if self._dispatcher is None:
            self._dispatcher = EmailDispatcher(settings=self.settings)
        return self._dispatcher

    async def close(self) -> None:
        await self.marketplace_scraper.disconnect()
        await self.site_scraper.disconnect()
        if self._engine is not None:
            await self._engine.close()
        if self._dispatcher is not None:
            await self._dispatcher.close()

    # =========================================================================
    # Graph Construction
    # =========================================================================

    def _build_analysis_graph(self):
        """
        Graph structure:

            validate_input --fail--> END
                 |  \\
                 |   persist --> record_lead --fail--> END
                 v               |
            scrape_product <-----+
                 |--fail--> END
                 |--check_only--> respond
                 v
            analyze_listing --fail--> END
                 |  \\
                 |   persist --> persist_report --fail--> END
                 |                    |
                 |               deliver_report
                 v                    |
              respond <---------------+
                 |
                END
        """
        graph = StateGraph(AnalysisState)

        graph.add_node("validate_input", self._validate_input_node)
        graph.add_node("record_lead", self._record_lead_node)
        graph.add_node("scrape_product", self._scrape_product_node)
        graph.add_node("analyze_listing", self._analyze_listing_node)
        graph.add_node("persist_report", self._persist_report_node)
        graph.add_node("deliver_report", self._deliver_report_node)
        graph.add_node("respond", self._respond_node)

        graph.set_entry_point("validate_input")

        graph.add_conditional_edges(
            "validate_input",
            self._route_after_validation,
            {"record": "record_lead", "scrape": "scrape_product", "fail": END},
        )
        graph.add_conditional_edges(
            "record_lead",
            self._route_on_failure,
            {"continue": "scrape_product", "fail": END},
        )
        graph.add_conditional_edges(
            "scrape_product",
            self._route_after_scrape,
            {"analyze": "analyze_listing", "respond": "respond", "fail": END},
        )
        graph.add_conditional_edges(
            "analyze_listing",
            self._route_after_analysis,
            {"persist": "persist_report", "respond": "respond", "fail": END},
        )
        graph.add_conditional_edges(
            "persist_report",
            self._route_on_failure,
            {"continue": "deliver_report", "fail": END},
        )
        graph.add_edge("deliver_report", "respond")
        graph.add_edge("respond", END)

        return graph.compile()

    def _build_capture_graph(self):
        """
        Graph structure:

            update_lead (with a lead id) --fail--> END
                 |
                 +--preview--> dispatch_email --> END
                 v                  ^
            fetch_latest_report ----+

        Without a lead id the flow starts at the preview/lookup choice.
        """
        graph = StateGraph(CaptureState)

        graph.add_node("update_lead", self._update_lead_node)
        graph.add_node("fetch_latest_report", self._fetch_latest_report_node)
        graph.add_node("dispatch_email", self._dispatch_email_node)

        graph.set_conditional_entry_point(
            self._route_capture_entry,
            {"update": "update_lead", "preview": "dispatch_email", "lookup": "fetch_latest_report"},
        )
        graph.add_conditional_edges(
            "update_lead",
            self._route_after_lead_update,
            {"preview": "dispatch_email", "lookup": "fetch_latest_report", "fail": END},
        )
        graph.add_edge("fetch_latest_report", "dispatch_email")
        graph.add_edge("dispatch_email", END)

        return graph.compile()

    # =========================================================================
    # Routing
    # =========================================================================

    @staticmethod
    def _route_on_failure(state: dict) -> Literal["continue", "fail"]:
        return "fail" if state.get("failure") is not None else "continue"

    @staticmethod
    def _route_after_validation(state: AnalysisState) -> Literal["record", "scrape", "fail"]:
        if state.get("failure") is not None:
            return "fail"
        return "record" if state.get("persist") else "scrape"

    @staticmethod
    def _route_after_scrape(state: AnalysisState) -> Literal["analyze", "respond", "fail"]:
        if state.get("failure") is not None:
            return "fail"
        return "respond" if state.get("check_only") else "analyze"

    @staticmethod
    def _route_after_analysis(state: AnalysisState) -> Literal["persist", "respond", "fail"]:
        if state.get("failure") is not None:
            return "fail"
        return "persist" if state.get("persist") else "respond"

    @staticmethod
    def _route_capture_entry(state: CaptureState) -> Literal["update", "preview", "lookup"]:
        if state.get("lead_id") is not None:
            return "update"
        return "preview" if state.get("preview") is not None else "lookup"

    @staticmethod
    def _route_after_lead_update(state: CaptureState) -> Literal["preview", "lookup", "fail"]:
        if state.get("failure") is not None:
            return "fail"
        return "preview" if state.get("preview") is not None else "lookup"

    # =========================================================================
    # Analysis Flow Nodes
    # =========================================================================

    @track_timing
    async def _validate_input_node(self, state: AnalysisState) -> dict[str, Any]:
        """Parse the form, then turn away non-browser clients before any outbound call."""
        try:
            normalized = self.validator.validate(state["mode"], state.get("raw_fields") or {})
        except ValidationError as e:
            return _fail(PipelineStatus.VALIDATION_FAILED, e)

        meta = state.get("client_meta") or ClientMeta()
        if is_suspected_bot(meta.user_agent):
            return _fail(PipelineStatus.BOT_REJECTED, BotSuspectedError())

        return {"normalized": normalized}

    @track_timing
    async def _record_lead_node(self, state: AnalysisState) -> dict[str, Any]:
        normalized = state["normalized"]
        meta = state.get("client_meta") or ClientMeta()

        try:
            user = await self._store_call(self.store.get_user_by_email(normalized.email))
            access_type = AccessType.ACCOUNT if user is not None else AccessType.GUEST

            lead = Lead.from_input(normalized, meta)
            if user is not None:
                lead = lead.model_copy(update={"user_id": user.id})
            lead = await self._store_call(self.store.create_lead(lead))
        except (StoreError, AppTimeoutError) as e:
            error = StoreError("Failed to create lead", code="LEAD_CREATE_FAILED", details={"reason": e.message})
            return _fail(PipelineStatus.STORE_FAILED, error)

        self.observer.event(
            "form_submit",
            lead_id=str(lead.id),
            audit_type=lead.audit_type.value,
            access_type=access_type.value,
            ip_address=meta.ip_address,
        )
        return {"lead": lead, "access_type": access_type}

    @track_timing
    async def _scrape_product_node(self, state: AnalysisState) -> dict[str, Any]:
        normalized = state["normalized"]

        if isinstance(normalized, ExistingSellerInput):
            outcome = await self._bounded_scrape(self.marketplace_scraper, normalized.asin)
            if not isinstance(outcome, ScrapeErr):
                return {"scraped": outcome.data, "scrape_degraded": False}
            if outcome.code.is_terminal:
                return _fail(PipelineStatus.SCRAPE_TERMINAL_FAILURE, self._marketplace_error(outcome))
            # Transient marketplace failures fall back to an audit without page data
            self.observer.stage_degraded(
                "scrape_product",
                outcome.code.value,
                run_id=state.get("run_id"),
                message=outcome.message,
            )
            return {
                "scraped": None,
                "scrape_degraded": True,
                "errors": [f"{outcome.code.value}: {outcome.message}"],
            }

        if not normalized.website_url:
            return {"scraped": None, "scrape_degraded": False}

        outcome = await self._bounded_scrape(self.site_scraper, normalized.website_url)
        if isinstance(outcome, ScrapeErr):
            return _fail(
                PipelineStatus.SCRAPE_TERMINAL_FAILURE,
                ScrapeFailedError(
                    URL_SCRAPE_FAILED_MESSAGE,
                    code="URL_SCRAPING_FAILED",
                    details={
                        "message": URL_SCRAPE_FAILED_HINT,
                        "suggestion": "manual_input",
                        "reason": outcome.code.value,
                    },
                ),
            )
        return {"scraped": outcome.data, "scrape_degraded": False}

    async def _bounded_scrape(self, scraper: ProductScraper, target: str):
        try:
            return await asyncio.wait_for(
                scraper.scrape(target),
                timeout=scraper.timeout_seconds + SCRAPE_GRACE_SECONDS,
            )
        except asyncio.TimeoutError:
            return ScrapeErr(ScrapeErrorCode.TIMEOUT, f"{scraper.name} scrape exceeded its time budget")

    @staticmethod
    def _marketplace_error(err: ScrapeErr) -> ScrapeFailedError:
        if err.code is ScrapeErrorCode.PRODUCT_NOT_FOUND:
            return ScrapeFailedError(PRODUCT_NOT_FOUND_MESSAGE, code=err.code.value, status_code=404)
        return ScrapeFailedError(INVALID_ASIN_MESSAGE, code=err.code.value, status_code=400)

    @track_timing
    async def _analyze_listing_node(self, state: AnalysisState) -> dict[str, Any]:
        try:
            result = await self._run_analysis(
                state["mode"],
                state["normalized"],
                state.get("scraped"),
                state.get("access_type", AccessType.GUEST),
            )
        except AppTimeoutError:
            error = AnalysisError(ANALYSIS_FAILED_MESSAGE, code="ANALYSIS_TIMEOUT")
            return _fail(PipelineStatus.ANALYSIS_FAILED, error)
        except AppError as e:
            return _fail(PipelineStatus.ANALYSIS_FAILED, e)
        return {"result": result}

    @with_timeout("ai_timeout_seconds")
    async def _run_analysis(
        self,
        mode: AuditMode,
        normalized: NormalizedInput,
        scraped: Optional[ScrapedProductData],
        access_type: AccessType,
    ) -> AnalysisResult:
        return await self.engine.analyze(mode, normalized, scraped, access_type)

    @track_timing
    async def _persist_report_node(self, state: AnalysisState) -> dict[str, Any]:
        lead = state["lead"]
        result = state["result"]
        access_type = state.get("access_type", AccessType.GUEST)

        try:
            report = await self._store_call(self.store.create_report(Report.from_result(lead, result, access_type)))
        except (StoreError, AppTimeoutError) as e:
            error = StoreError("Failed to save report", code="REPORT_CREATE_FAILED", details={"reason": e.message})
            return _fail(PipelineStatus.STORE_FAILED, error)

        self.observer.event(
            "report_generated",
            lead_id=str(lead.id),
            report_id=str(report.id),
            score=report.score,
            access_type=access_type.value,
        )
        return {"report": report}

    @track_timing
    async def _deliver_report_node(self, state: AnalysisState) -> dict[str, Any]:
        lead = state["lead"]
        delivery = await self.dispatcher.send(
            lead.email,
            lead.name or "",
            state["mode"].delivery_mode,
            payload=state["result"],
            asin=lead.asin,
        )
        if not delivery.success:
            return {"delivery": delivery, "errors": [f"EMAIL_FAILED: {delivery.error}"]}
        return {"delivery": delivery}

    @track_timing
    async def _respond_node(self, state: AnalysisState) -> dict[str, Any]:
        return {"status": PipelineStatus.SUCCESS.value}

    # =========================================================================
    # Capture Flow Nodes
    # =========================================================================

    @track_timing
    async def _update_lead_node(self, state: CaptureState) -> dict[str, Any]:
        try:
            lead = await self._store_call(
                self.store.update_lead_contact(state["lead_id"], state["email"], state["name"])
            )
        except (StoreError, AppTimeoutError) as e:
            error = LeadUpdateError(LEAD_UPDATE_FAILED_MESSAGE, details={"reason": e.message})
            return _fail(PipelineStatus.UPDATE_FAILED, error)
        if lead is None:
            error = LeadUpdateError(LEAD_UPDATE_FAILED_MESSAGE, details={"reason": "lead not found"})
            return _fail(PipelineStatus.UPDATE_FAILED, error)
        return {"lead": lead}

    @track_timing
    async def _fetch_latest_report_node(self, state: CaptureState) -> dict[str, Any]:
        """Best effort: without a report the visitor gets the welcome message."""
        try:
            report = await self._store_call(self.store.get_latest_report_for_email(state["email"]))
        except (StoreError, AppTimeoutError) as e:
            self.observer.stage_degraded(
                "fetch_latest_report",
                e.code,
                run_id=state.get("run_id"),
                message=e.message,
            )
            return {"report": None, "errors": [f"{e.code}: {e.message}"]}
        return {"report": report}

    @track_timing
    async def _dispatch_email_node(self, state: CaptureState) -> dict[str, Any]:
        lead = state.get("lead")
        preview = state.get("preview")
        report = state.get("report")
        payload = preview if preview is not None else report

        self.observer.event(
            "email_captured",
            lead_id=str(lead.id) if lead else None,
            mode=state["mode"].value,
            source="preview" if preview is not None else "stored_report" if report is not None else "none",
        )
        delivery = await self.dispatcher.send(
            state["email"],
            state["name"],
            state["mode"],
            payload=payload,
            asin=state.get("asin") or (lead.asin if lead else None),
        )
        result: dict[str, Any] = {"delivery": delivery, "status": PipelineStatus.SUCCESS.value}
        if not delivery.success:
            result["errors"] = [f"EMAIL_FAILED: {delivery.error}"]
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    @with_timeout("store_timeout_seconds")
    async def _store_call(self, awaitable):
        return await awaitable

    async def _run_analysis_graph(
        self,
        mode: Union[AuditMode, str],
        fields: Mapping[str, Any],
        client_meta: Optional[ClientMeta],
        check_only: bool,
        persist: bool,
    ) -> AnalysisState:
        audit_mode = self.validator.parse_mode(mode)
        run_id = str(uuid4())
        initial_state: AnalysisState = {
            "run_id": run_id,
            "mode": audit_mode,
            "raw_fields": dict(fields or {}),
            "client_meta": client_meta or ClientMeta(),
            "check_only": check_only,
            "persist": persist,
            "access_type": AccessType.GUEST,
            "lead": None,
            "scraped": None,
            "scrape_degraded": False,
            "result": None,
            "report": None,
            "delivery": None,
            "status": PipelineStatus.RUNNING.value,
            "failure": None,
            "errors": [],
            "step_timings": {},
        }

        self.observer.run_started(run_id, "analysis", mode=audit_mode.value, persist=persist)
        final_state = await self._analysis_graph.ainvoke(initial_state)
        self._finish_run(final_state, degraded=final_state.get("scrape_degraded", False))
        return final_state

    def _finish_run(self, final_state: Mapping[str, Any], **context: Any) -> None:
        """Report the run's end to the observer and re-raise its terminal failure."""
        failure = final_state.get("failure")
        if failure is not None:
            context["code"] = failure.code
        self.observer.run_finished(
            final_state["run_id"],
            final_state.get("status", PipelineStatus.RUNNING.value),
            sum(final_state.get("step_timings", {}).values()),
            **context,
        )
        if failure is not None:
            raise failure

    @staticmethod
    def _outcome(state: AnalysisState) -> PipelineOutcome:
        lead = state.get("lead")
        report = state.get("report")
        return PipelineOutcome(
            run_id=state["run_id"],
            mode=state["mode"],
            result=state.get("result"),
            scannable=bool(state.get("check_only")),
            access_type=state.get("access_type", AccessType.GUEST),
            scrape_degraded=state.get("scrape_degraded", False),
            lead_id=lead.id if lead else None,
            report_id=report.id if report else None,
            delivery=state.get("delivery"),
            step_timings=state.get("step_timings", {}),
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def preview(
        self,
        mode: Union[AuditMode, str],
        fields: Mapping[str, Any],
        client_meta: Optional[ClientMeta] = None,
        check_only: bool = False,
    ) -> PipelineOutcome:
        """
        Validate, scrape and analyze without persisting anything.

        With `check_only` the run stops after a successful scrape and the
        outcome is `scannable`.

        Raises:
            AppError: the terminal failure of the stage that stopped the run.
        """
        state = await self._run_analysis_graph(mode, fields, client_meta, check_only, persist=False)
        return self._outcome(state)

    async def generate_report(
        self,
        mode: Union[AuditMode, str],
        fields: Mapping[str, Any],
        client_meta: Optional[ClientMeta] = None,
    ) -> PipelineOutcome:
        """
        Full run: record the lead, analyze, store the report and e-mail it.

        A failed e-mail never fails the run; see `PipelineOutcome.email_sent`.
        """
        state = await self._run_analysis_graph(mode, fields, client_meta, check_only=False, persist=True)
        return self._outcome(state)

    async def capture_email(
        self,
        email: str,
        name: str,
        lead_id: Optional[Union[UUID, str]] = None,
        mode: Union[DeliveryMode, str] = DeliveryMode.AUDIT,
        preview_data: Optional[Mapping[str, Any]] = None,
    ) -> CaptureOutcome:
        """
        Attach contact details to a lead and e-mail the visitor their report.

        The report is the `preview_data` the visitor was shown when given,
        otherwise the latest stored report for the address. Without
        `lead_id` no lead is touched, which is the path for a visitor who
        only ran a preview.

        Raises:
            ValidationError: malformed e-mail, name, lead id, mode or preview data.
            LeadUpdateError: the lead could not be updated.
        """
        email = self.validator.validate_email(email)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required", details={"field": "name"})
        lead_uuid = None
        if lead_id is not None and lead_id != "":
            try:
                lead_uuid = lead_id if isinstance(lead_id, UUID) else UUID(str(lead_id))
            except ValueError:
                raise ValidationError("Invalid lead id", details={"field": "leadId"})
        try:
            delivery_mode = DeliveryMode(mode)
        except ValueError:
            raise ValidationError("Invalid mode", details={"field": "mode"})
        preview = self._parse_preview(preview_data, delivery_mode)

        run_id = str(uuid4())
        self.observer.run_started(run_id, "email_capture", mode=delivery_mode.value, has_lead=lead_uuid is not None)
        final_state = await self._capture_graph.ainvoke({
            "run_id": run_id,
            "email": email,
            "name": name,
            "lead_id": lead_uuid,
            "mode": delivery_mode,
            "preview": preview,
            "asin": (preview_data or {}).get("asin"),
            "lead": None,
            "report": None,
            "delivery": None,
            "status": PipelineStatus.RUNNING.value,
            "failure": None,
            "errors": [],
            "step_timings": {},
        })
        self._finish_run(final_state)

        return CaptureOutcome(
            lead_id=lead_uuid,
            delivery=final_state["delivery"],
            had_report=preview is not None or final_state.get("report") is not None,
        )

    @staticmethod
    def _parse_preview(
        preview_data: Optional[Mapping[str, Any]],
        delivery_mode: DeliveryMode,
    ) -> Optional[AnalysisResult]:
        """The preview result as the client echoed it back, in its camelCase form."""
        if not preview_data:
            return None
        data = dict(preview_data)
        data.setdefault("mode", AuditMode.EXISTING if delivery_mode is DeliveryMode.AUDIT else AuditMode.NEW)
        try:
            return AnalysisResult.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid preview data",
                details={"field": "previewData", "errors": [err["msg"] for err in e.errors()[:3]]},
            ) from e

    async def suggest(
        self,
        kind: Any,
        data: Optional[Mapping[str, Any]],
        client_meta: Optional[ClientMeta] = None,
    ) -> SuggestionResult:
        """Keyword or title suggestions. Input is checked before any model call."""
        suggestion_kind, category, description, keywords = self.validator.validate_suggestion_request(kind, data)

        meta = client_meta or ClientMeta()
        if is_suspected_bot(meta.user_agent):
            raise BotSuspectedError()

        stage = f"suggest_{suggestion_kind.value}"
        self.observer.stage_started(stage)
        start_time = time.perf_counter()
        try:
            result = await self._run_suggestion(suggestion_kind, category, description, keywords)
        except AppTimeoutError as e:
            self.observer.stage_failed(stage, e)
            raise AnalysisError("Failed to generate suggestions", code="SUGGESTIONS_FAILED")
        except AppError as e:
            self.observer.stage_failed(stage, e)
            raise
        self.observer.stage_completed(stage, int((time.perf_counter() - start_time) * 1000))
        return result

    @with_timeout("ai_timeout_seconds")
    async def _run_suggestion(self, kind, category: str, description: str, keywords: list[str]) -> SuggestionResult:
        return await self.engine.suggest(kind, category, description, keywords)


__all__ = [
    "CaptureOutcome",
    "LeadPipeline",
    "PipelineOutcome",
    "PipelineStatus",
    "track_timing",
    "with_timeout",
]
