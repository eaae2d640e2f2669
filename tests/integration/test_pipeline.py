"""
Integration tests for the lead-to-report pipeline.

The LangGraph flows run for real against the in-memory store; scrapers,
the analysis engine and the e-mail dispatcher are mocked.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from listing_audit.models.schemas import (
    AccessType,
    AuditMode,
    ClientMeta,
    DeliveryMode,
    DeliveryRecord,
    Lead,
    Report,
    ScrapeErr,
    ScrapeErrorCode,
    User,
)
from listing_audit.utils.errors import (
    AnalysisError,
    BotSuspectedError,
    LeadUpdateError,
    ScrapeFailedError,
    StoreError,
    ValidationError,
)


def event_names(observer):
    return [c.args[0] for c in observer.event.call_args_list]


# =============================================================================
# Preview
# =============================================================================

@pytest.mark.asyncio
async def test_preview_existing(pipeline, existing_fields, browser_meta, marketplace, mock_engine, store, existing_result):
    outcome = await pipeline.preview("existing", existing_fields, browser_meta)

    assert outcome.result == existing_result
    assert outcome.mode is AuditMode.EXISTING
    assert outcome.scrape_degraded is False
    assert outcome.lead_id is None and outcome.report_id is None
    marketplace.scrape.assert_awaited_once_with("B08N5WRWNW")
    mode, normalized, scraped, access_type = mock_engine.analyze.call_args.args
    assert normalized.email == "sam@example.com"
    assert scraped.brand == "Acme"
    assert access_type is AccessType.GUEST
    assert store.stats() == {"leads": 0, "reports": 0, "users": 0}
    assert set(outcome.step_timings) == {"validate_input", "scrape_product", "analyze_listing", "respond"}


@pytest.mark.asyncio
async def test_preview_accepts_product_url(pipeline, existing_fields, browser_meta, marketplace):
    fields = dict(existing_fields, asin="https://www.amazon.co.uk/Acme-Earbuds/dp/B08N5WRWNW?ref=sr_1")
    await pipeline.preview("existing_seller", fields, browser_meta)
    marketplace.scrape.assert_awaited_once_with("B08N5WRWNW")


@pytest.mark.asyncio
async def test_preview_check_only(pipeline, new_fields, browser_meta, site, mock_engine):
    outcome = await pipeline.preview("new", new_fields, browser_meta, check_only=True)

    assert outcome.scannable is True
    assert outcome.result is None
    site.scrape.assert_awaited_once_with("https://shop.example.com/products/bamboo-board")
    mock_engine.analyze.assert_not_called()


@pytest.mark.asyncio
async def test_preview_new_without_website(pipeline, new_fields, browser_meta, site, new_result):
    fields = dict(new_fields, websiteUrl="", noWebsiteDesc="Hand-finished bamboo boards from our workshop")
    outcome = await pipeline.preview("new", fields, browser_meta)

    assert outcome.result == new_result
    site.scrape.assert_not_called()


@pytest.mark.asyncio
async def test_marketplace_transient_failure_degrades(pipeline, existing_fields, browser_meta, marketplace, mock_engine, mock_observer):
    marketplace.scrape.return_value = ScrapeErr(ScrapeErrorCode.FETCH_FAILED, "captcha page")

    outcome = await pipeline.preview("existing", existing_fields, browser_meta)

    assert outcome.scrape_degraded is True
    assert outcome.result is not None
    assert mock_engine.analyze.call_args.args[2] is None
    stage, reason = mock_observer.stage_degraded.call_args.args
    assert (stage, reason) == ("scrape_product", "FETCH_FAILED")


@pytest.mark.asyncio
async def test_marketplace_scrape_over_budget_degrades(pipeline, existing_fields, browser_meta, marketplace, monkeypatch):
    monkeypatch.setattr("listing_audit.pipeline.orchestrator.SCRAPE_GRACE_SECONDS", 0.0)
    marketplace.timeout_seconds = 0.01

    async def hang(target):
        await asyncio.sleep(1)

    marketplace.scrape = AsyncMock(side_effect=hang)

    outcome = await pipeline.preview("existing", existing_fields, browser_meta)
    assert outcome.scrape_degraded is True


@pytest.mark.asyncio
async def test_product_not_found_is_terminal(pipeline, existing_fields, browser_meta, marketplace, mock_engine):
    marketplace.scrape.return_value = ScrapeErr(ScrapeErrorCode.PRODUCT_NOT_FOUND, "404")

    with pytest.raises(ScrapeFailedError) as exc_info:
        await pipeline.preview("existing", existing_fields, browser_meta)

    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "PRODUCT_NOT_FOUND"
    mock_engine.analyze.assert_not_called()


@pytest.mark.asyncio
async def test_site_failure_suggests_manual_input(pipeline, new_fields, browser_meta, site, mock_observer):
    site.scrape.return_value = ScrapeErr(ScrapeErrorCode.FETCH_FAILED, "connection refused")

    with pytest.raises(ScrapeFailedError) as exc_info:
        await pipeline.preview("new", new_fields, browser_meta)

    error = exc_info.value
    assert error.code == "URL_SCRAPING_FAILED"
    assert error.status_code == 400
    assert error.to_response()["suggestion"] == "manual_input"
    failed_stages = [c.args[0] for c in mock_observer.stage_failed.call_args_list]
    assert failed_stages == ["scrape_product"]


@pytest.mark.asyncio
async def test_bot_user_agent_rejected(pipeline, existing_fields, marketplace):
    with pytest.raises(BotSuspectedError):
        await pipeline.preview("existing", existing_fields, ClientMeta(user_agent="curl/8.4.0"))
    marketplace.scrape.assert_not_called()


@pytest.mark.asyncio
async def test_validation_runs_before_bot_gate(pipeline, existing_fields):
    fields = dict(existing_fields, email="not-an-email")
    with pytest.raises(ValidationError):
        await pipeline.preview("existing", fields, ClientMeta(user_agent="Googlebot/2.1"))


@pytest.mark.asyncio
async def test_invalid_mode(pipeline, existing_fields, browser_meta):
    with pytest.raises(ValidationError) as exc_info:
        await pipeline.preview("sideways", existing_fields, browser_meta)
    assert exc_info.value.code == "INVALID_AUDIT_TYPE"


@pytest.mark.asyncio
async def test_analysis_timeout(pipeline, mock_settings, existing_fields, browser_meta, mock_engine):
    mock_settings.ai_timeout_seconds = 0.01

    async def slow(*args):
        await asyncio.sleep(1)

    mock_engine.analyze = AsyncMock(side_effect=slow)

    with pytest.raises(AnalysisError) as exc_info:
        await pipeline.preview("existing", existing_fields, browser_meta)
    assert exc_info.value.code == "ANALYSIS_TIMEOUT"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_analysis_failure_propagates(pipeline, existing_fields, browser_meta, mock_engine):
    mock_engine.analyze = AsyncMock(side_effect=AnalysisError("Failed to analyze content"))
    with pytest.raises(AnalysisError):
        await pipeline.preview("existing", existing_fields, browser_meta)


# =============================================================================
# Report generation
# =============================================================================

@pytest.mark.asyncio
async def test_generate_report(pipeline, existing_fields, browser_meta, store, mock_dispatcher, mock_observer):
    outcome = await pipeline.generate_report("existing", existing_fields, browser_meta)

    lead = await store.get_lead(outcome.lead_id)
    report = await store.get_report(outcome.report_id)
    assert lead.email == "sam@example.com"
    assert lead.ip_address == "203.0.113.7"
    assert report.lead_id == lead.id
    assert report.score == 72
    assert report.asin == "B08N5WRWNW"
    assert report.access_type is AccessType.GUEST
    assert outcome.email_sent is True

    args, kwargs = mock_dispatcher.send.call_args
    assert args == ("sam@example.com", "Sam Seller", DeliveryMode.AUDIT)
    assert kwargs["asin"] == "B08N5WRWNW"
    assert event_names(mock_observer) == ["form_submit", "report_generated"]


@pytest.mark.asyncio
async def test_generate_report_for_account_holder(pipeline, existing_fields, browser_meta, store, mock_engine):
    user = await store.create_user(User(email="sam@example.com", password_hash="x", name="Sam"))

    outcome = await pipeline.generate_report("existing", existing_fields, browser_meta)

    assert outcome.access_type is AccessType.ACCOUNT
    assert mock_engine.analyze.call_args.args[3] is AccessType.ACCOUNT
    report = await store.get_report(outcome.report_id)
    assert report.user_id == user.id
    assert (await store.get_lead(outcome.lead_id)).user_id == user.id


@pytest.mark.asyncio
async def test_generate_report_listing_pack(pipeline, new_fields, browser_meta, store, mock_dispatcher):
    outcome = await pipeline.generate_report("new", new_fields, browser_meta)

    report = await store.get_report(outcome.report_id)
    assert report.mode is AuditMode.NEW
    assert report.detailed_analysis["listing_pack"]["title"].startswith("GreenCut")
    assert mock_dispatcher.send.call_args.args[2] is DeliveryMode.CREATE


@pytest.mark.asyncio
async def test_email_failure_does_not_fail_report(pipeline, existing_fields, browser_meta, store, mock_dispatcher):
    mock_dispatcher.send.return_value = DeliveryRecord(success=False, provider="resend", error="HTTP 500")

    outcome = await pipeline.generate_report("existing", existing_fields, browser_meta)

    assert outcome.email_sent is False
    assert await store.get_report(outcome.report_id) is not None


@pytest.mark.asyncio
async def test_lead_store_failure(pipeline, existing_fields, browser_meta, store, mock_engine):
    store.create_lead = AsyncMock(side_effect=StoreError("connection reset"))

    with pytest.raises(StoreError) as exc_info:
        await pipeline.generate_report("existing", existing_fields, browser_meta)
    assert exc_info.value.code == "LEAD_CREATE_FAILED"
    mock_engine.analyze.assert_not_called()


@pytest.mark.asyncio
async def test_failed_scrape_still_records_lead(pipeline, existing_fields, browser_meta, store, marketplace):
    marketplace.scrape.return_value = ScrapeErr(ScrapeErrorCode.INVALID_ASIN, "bad")

    with pytest.raises(ScrapeFailedError):
        await pipeline.generate_report("existing", existing_fields, browser_meta)
    assert store.stats()["leads"] == 1
    assert store.stats()["reports"] == 0


# =============================================================================
# E-mail capture
# =============================================================================

@pytest.mark.asyncio
async def test_capture_email_sends_latest_report(pipeline, existing_fields, browser_meta, store, mock_dispatcher):
    generated = await pipeline.generate_report("existing", existing_fields, browser_meta)
    mock_dispatcher.send.reset_mock()

    outcome = await pipeline.capture_email("SAM@example.com", "Sam", str(generated.lead_id), "audit")

    assert outcome.had_report is True
    assert outcome.message_id == "msg_123"
    assert outcome.has_pdf is True
    args, kwargs = mock_dispatcher.send.call_args
    assert args == ("sam@example.com", "Sam", DeliveryMode.AUDIT)
    assert isinstance(kwargs["payload"], Report)
    assert kwargs["payload"].id == generated.report_id


@pytest.mark.asyncio
async def test_capture_email_without_report_sends_welcome(pipeline, store, mock_dispatcher, mock_observer):
    lead = await store.create_lead(Lead(audit_type=AuditMode.NEW))

    outcome = await pipeline.capture_email("nia@example.com", "Nia", lead.id, DeliveryMode.CREATE)

    assert outcome.had_report is False
    assert mock_dispatcher.send.call_args.kwargs["payload"] is None
    updated = await store.get_lead(lead.id)
    assert updated.email == "nia@example.com" and updated.name == "Nia"
    assert "email_captured" in event_names(mock_observer)


@pytest.mark.asyncio
async def test_capture_email_delivery_failure_is_reported(pipeline, store, mock_dispatcher):
    lead = await store.create_lead(Lead(audit_type=AuditMode.EXISTING))
    mock_dispatcher.send.return_value = DeliveryRecord(success=False, provider="resend", error="Email service not configured")

    outcome = await pipeline.capture_email("sam@example.com", "Sam", lead.id)

    assert outcome.message_id is None
    assert outcome.has_pdf is False


@pytest.mark.asyncio
async def test_capture_email_unknown_lead(pipeline, mock_dispatcher):
    with pytest.raises(LeadUpdateError) as exc_info:
        await pipeline.capture_email("sam@example.com", "Sam", "6f1c2d4e-8a9b-4c3d-9e8f-7a6b5c4d3e2f")
    assert exc_info.value.message == "Failed to update lead"
    mock_dispatcher.send.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email,name,lead_id,mode",
    [
        ("not-an-email", "Sam", "6f1c2d4e-8a9b-4c3d-9e8f-7a6b5c4d3e2f", "audit"),
        ("sam@example.com", "  ", "6f1c2d4e-8a9b-4c3d-9e8f-7a6b5c4d3e2f", "audit"),
        ("sam@example.com", "Sam", "lead-42", "audit"),
        ("sam@example.com", "Sam", "6f1c2d4e-8a9b-4c3d-9e8f-7a6b5c4d3e2f", "fax"),
    ],
)
async def test_capture_email_validation(pipeline, email, name, lead_id, mode):
    with pytest.raises(ValidationError):
        await pipeline.capture_email(email, name, lead_id, mode)


# =============================================================================
# Suggestions
# =============================================================================

@pytest.mark.asyncio
async def test_suggest(pipeline, browser_meta, mock_engine):
    data = {"category": "Kitchen", "description": "Bamboo board <b>", "keywords": ["bamboo", "  ", 3]}

    result = await pipeline.suggest("Keywords", data, browser_meta)

    assert result.suggestions == ["bamboo chopping board", "wooden cutting board"]
    kind, category, description, keywords = mock_engine.suggest.call_args.args
    assert description == "Bamboo board b"
    assert keywords == ["bamboo"]


@pytest.mark.asyncio
async def test_suggest_rejects_bots(pipeline, mock_engine):
    with pytest.raises(BotSuspectedError):
        await pipeline.suggest("title", {"category": "Kitchen", "description": "Board"}, ClientMeta(user_agent="python-requests/2.31"))
    mock_engine.suggest.assert_not_called()


@pytest.mark.asyncio
async def test_suggest_missing_fields(pipeline, browser_meta):
    with pytest.raises(ValidationError) as exc_info:
        await pipeline.suggest("title", {"category": "Kitchen"}, browser_meta)
    assert exc_info.value.message == "Category and description required for title suggestions"


@pytest.mark.asyncio
async def test_close_releases_collaborators(pipeline, marketplace, site, mock_engine, mock_dispatcher):
    await pipeline.close()
    marketplace.disconnect.assert_awaited_once()
    site.disconnect.assert_awaited_once()
    mock_engine.close.assert_awaited_once()
    mock_dispatcher.close.assert_awaited_once()


# =============================================================================
# Run reporting
# =============================================================================

@pytest.mark.asyncio
async def test_runs_are_reported_to_observer(pipeline, existing_fields, browser_meta, mock_observer):
    outcome = await pipeline.preview("existing", existing_fields, browser_meta)

    run_id, flow = mock_observer.run_started.call_args.args
    assert (run_id, flow) == (outcome.run_id, "analysis")
    finished_id, status, duration_ms = mock_observer.run_finished.call_args.args
    assert finished_id == outcome.run_id
    assert status == "success"
    assert duration_ms >= 0


@pytest.mark.asyncio
async def test_failed_runs_are_reported_with_code(pipeline, existing_fields, mock_observer):
    with pytest.raises(BotSuspectedError):
        await pipeline.preview("existing", existing_fields, ClientMeta(user_agent="curl/8.4"))

    _, status, _ = mock_observer.run_finished.call_args.args
    assert status == "bot_rejected"
    assert mock_observer.run_finished.call_args.kwargs["code"] == "BOT_SUSPECTED"


# =============================================================================
# Preview funnel e-mail
# =============================================================================

@pytest.mark.asyncio
async def test_capture_email_with_preview_data_needs_no_lead(pipeline, existing_result, store, mock_dispatcher, mock_observer):
    preview_data = dict(existing_result.model_dump(mode="json", by_alias=True), asin="B08N5WRWNW")

    outcome = await pipeline.capture_email("Sam@Example.com", "Sam", None, "audit", preview_data=preview_data)

    assert outcome.lead_id is None
    assert outcome.has_pdf is True
    assert outcome.message_id == "msg_123"
    args, kwargs = mock_dispatcher.send.call_args
    assert args == ("sam@example.com", "Sam", DeliveryMode.AUDIT)
    assert kwargs["payload"].score == existing_result.score
    assert kwargs["payload"].quality_check.grade == "A"
    assert kwargs["asin"] == "B08N5WRWNW"
    assert store.stats()["leads"] == 0
    assert mock_observer.event.call_args.kwargs["source"] == "preview"


@pytest.mark.asyncio
async def test_capture_email_preview_data_without_mode_uses_delivery_mode(pipeline, mock_dispatcher):
    preview_data = {"score": 81, "highlights": ["Brand-led title"], "recommendations": []}

    await pipeline.capture_email("nia@example.com", "Nia", mode="create", preview_data=preview_data)

    assert mock_dispatcher.send.call_args.kwargs["payload"].mode is AuditMode.NEW


@pytest.mark.asyncio
async def test_capture_email_preview_data_updates_lead(pipeline, store, existing_result, mock_dispatcher):
    lead = await store.create_lead(Lead(audit_type=AuditMode.EXISTING, asin="B08N5WRWNW"))

    outcome = await pipeline.capture_email(
        "sam@example.com",
        "Sam",
        str(lead.id),
        preview_data=existing_result.model_dump(mode="json", by_alias=True),
    )

    assert outcome.has_pdf is True
    updated = await store.get_lead(lead.id)
    assert updated.email == "sam@example.com"
    assert mock_dispatcher.send.call_args.kwargs["asin"] == "B08N5WRWNW"


@pytest.mark.asyncio
async def test_capture_email_without_lead_or_preview_uses_latest_report(
    pipeline, existing_fields, browser_meta, mock_dispatcher
):
    generated = await pipeline.generate_report("existing", existing_fields, browser_meta)
    mock_dispatcher.send.reset_mock()

    outcome = await pipeline.capture_email("sam@example.com", "Sam")

    assert outcome.has_pdf is True
    assert mock_dispatcher.send.call_args.kwargs["payload"].id == generated.report_id


@pytest.mark.asyncio
async def test_capture_email_invalid_preview_data(pipeline, mock_dispatcher):
    with pytest.raises(ValidationError) as exc_info:
        await pipeline.capture_email("sam@example.com", "Sam", preview_data={"score": "lots"})
    assert exc_info.value.details["field"] == "previewData"
    mock_dispatcher.send.assert_not_called()


@pytest.mark.asyncio
async def test_has_pdf_reflects_report_even_when_send_fails(pipeline, existing_fields, browser_meta, mock_dispatcher):
    generated = await pipeline.generate_report("existing", existing_fields, browser_meta)
    mock_dispatcher.send.return_value = DeliveryRecord(success=False, provider="resend", error="HTTP 500")

    outcome = await pipeline.capture_email("sam@example.com", "Sam", generated.lead_id)

    assert outcome.has_pdf is True
    assert outcome.message_id is None


@pytest.mark.asyncio
async def test_latest_report_lookup_failure_degrades(pipeline, store, mock_dispatcher, mock_observer, monkeypatch):
    lead = await store.create_lead(Lead(audit_type=AuditMode.EXISTING))
    monkeypatch.setattr(store, "get_latest_report_for_email", AsyncMock(side_effect=StoreError("db down")))

    outcome = await pipeline.capture_email("sam@example.com", "Sam", lead.id)

    assert outcome.has_pdf is False
    assert mock_dispatcher.send.call_args.kwargs["payload"] is None
    assert mock_observer.stage_degraded.call_args.args[0] == "fetch_latest_report"


# =============================================================================
# Suggestion input checks
# =============================================================================

@pytest.mark.asyncio
async def test_keyword_suggestions_without_description_make_no_model_call(pipeline, browser_meta, mock_engine):
    with pytest.raises(ValidationError) as exc_info:
        await pipeline.suggest("keywords", {"category": "Kitchen"}, browser_meta)

    assert exc_info.value.status_code == 400
    mock_engine.suggest.assert_not_called()
