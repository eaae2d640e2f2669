"""
Report formatting utilities.

Builds the client-facing artefacts that go out with an e-mail: the PDF report
(reportlab platypus) and the HTML message body. Both accept either a stored
Report or a fresh AnalysisResult.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from io import BytesIO
from typing import Any, Optional, Union

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from listing_audit.models.schemas import AnalysisResult, DeliveryMode, ListingPack, Report
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

ReportPayload = Union[Report, AnalysisResult]

BRAND_NAME = "E-CTRL"
BRAND_COLOR = colors.HexColor("#2563eb")
CONSULTATION_URL = "https://calendly.com/fesalswork12/30min"

SECTION_TITLES = {
    "title_quality": "Title Quality",
    "bullet_points": "Bullet Points",
    "product_images": "Product Images",
    "product_description": "Product Description",
    "product_information": "Product Information",
}


def attachment_filename(mode: DeliveryMode, asin: Optional[str] = None) -> str:
    """File name of the PDF attached to a delivery."""
    if mode == DeliveryMode.AUDIT:
        return f"amazon-audit-report-{asin or 'product'}.pdf"
    return "amazon-listing-pack.pdf"


def subject_for(mode: DeliveryMode) -> str:
    if mode == DeliveryMode.AUDIT:
        return "Your Amazon Audit Report is Ready!"
    return "Your Amazon Listing Pack is Ready!"


def score_label(score: int) -> str:
    if score >= 80:
        return "Strong"
    if score >= 60:
        return "Needs polish"
    return "Needs work"


@dataclass
class ReportView:
    """Payload fields the renderers need, flattened from either payload type."""
    score: int
    highlights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    detailed_analysis: dict[str, Any] = field(default_factory=dict)
    title: Optional[str] = None
    asin: Optional[str] = None
    listing_pack: Optional[ListingPack] = None

    @classmethod
    def from_payload(cls, payload: ReportPayload) -> "ReportView":
        if isinstance(payload, Report):
            return cls(
                score=payload.score,
                highlights=list(payload.highlights),
                recommendations=list(payload.recommendations),
                detailed_analysis=dict(payload.detailed_analysis),
                asin=payload.asin,
            )
        return cls(
            score=payload.score,
            highlights=list(payload.highlights),
            recommendations=list(payload.recommendations),
            detailed_analysis=dict(payload.detailed_analysis),
            title=payload.title,
            listing_pack=payload.listing_pack,
        )


# =============================================================================
# PDF
# =============================================================================

class ReportDocumentBuilder:
    """
    Renders a delivery payload to PDF bytes and to an HTML e-mail body.

    Example:
        >>> pdf = ReportDocumentBuilder.build_pdf(result, DeliveryMode.AUDIT, name="Sam")
        >>> pdf[:4]
        b'%PDF'
    """

    @staticmethod
    def _styles() -> dict[str, ParagraphStyle]:
        base = getSampleStyleSheet()
        return {
            "title": ParagraphStyle(
                "ReportTitle",
                parent=base["Title"],
                fontSize=22,
                textColor=BRAND_COLOR,
                alignment=TA_CENTER,
                spaceAfter=12,
            ),
            "meta": ParagraphStyle(
                "ReportMeta", parent=base["Normal"], fontSize=9, textColor=colors.grey, alignment=TA_CENTER
            ),
            "h1": ParagraphStyle("ReportH1", parent=base["Heading1"], fontSize=15, spaceBefore=14),
            "h2": ParagraphStyle("ReportH2", parent=base["Heading2"], fontSize=12, spaceBefore=8),
            "body": ParagraphStyle("ReportBody", parent=base["BodyText"], fontSize=10, leading=14),
            "bullet": ParagraphStyle(
                "ReportBullet", parent=base["BodyText"], fontSize=10, leading=14, leftIndent=14, bulletIndent=4
            ),
        }

    @classmethod
    def build_pdf(
        cls,
        payload: ReportPayload,
        mode: DeliveryMode,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> bytes:
        view = ReportView.from_payload(payload)
        styles = cls._styles()
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=0.8 * inch,
            rightMargin=0.8 * inch,
            topMargin=0.8 * inch,
            bottomMargin=0.8 * inch,
            title=subject_for(mode),
            author=BRAND_NAME,
        )

        heading = "Amazon Listing Audit Report" if mode == DeliveryMode.AUDIT else "Amazon Listing Pack"
        story: list = [Paragraph(f"{BRAND_NAME} {heading}", styles["title"])]
        generated = datetime.now(timezone.utc).strftime("%d %B %Y")
        prepared_for = f"Prepared for {escape(name)}" if name else "Prepared for you"
        if email:
            prepared_for += f" ({escape(email)})"
        story.append(Paragraph(f"{prepared_for} on {generated}", styles["meta"]))
        if view.asin:
            story.append(Paragraph(f"ASIN: {escape(view.asin)}", styles["meta"]))
        story.append(Spacer(1, 0.25 * inch))

        story.append(cls._score_table(view))
        story.append(Spacer(1, 0.2 * inch))

        cls._add_list(story, styles, "Highlights", view.highlights)
        cls._add_list(story, styles, "Recommendations", view.recommendations)

        if mode == DeliveryMode.AUDIT:
            cls._add_audit_sections(story, styles, view.detailed_analysis)
        else:
            cls._add_listing_pack(story, styles, view)

        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Next steps", styles["h1"]))
        story.append(Paragraph(
            f'Book a free 15-minute consultation: <link href="{CONSULTATION_URL}">{CONSULTATION_URL}</link>',
            styles["body"],
        ))

        doc.build(story)
        pdf = buffer.getvalue()
        buffer.close()
        logger.debug("PDF rendered", mode=mode.value, size=len(pdf))
        return pdf

    @staticmethod
    def _score_table(view: ReportView) -> Table:
        table = Table(
            [["Overall score", f"{view.score}/100"], ["Assessment", score_label(view.score)]],
            colWidths=[2.2 * inch, 3.8 * inch],
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f3f4f6")),
            ("TEXTCOLOR", (1, 0), (1, 0), BRAND_COLOR),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTNAME", (1, 0), (1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 11),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e5e7eb")),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        return table

    @staticmethod
    def _add_list(story: list, styles: dict, heading: str, items: list[str]) -> None:
        if not items:
            return
        story.append(Paragraph(heading, styles["h1"]))
        for item in items:
            story.append(Paragraph(escape(str(item)), styles["bullet"], bulletText="•"))

    @classmethod
    def _add_audit_sections(cls, story: list, styles: dict, analysis: dict[str, Any]) -> None:
        sections = [(key, analysis.get(key)) for key in SECTION_TITLES if analysis.get(key)]
        if sections:
            story.append(Paragraph("Detailed Analysis", styles["h1"]))
        for key, section in sections:
            story.append(Paragraph(SECTION_TITLES[key], styles["h2"]))
            if isinstance(section, dict):
                for label, value in section.items():
                    cls._add_field(story, styles, label, value)
            else:
                story.append(Paragraph(escape(str(section)), styles["body"]))

        quality = analysis.get("content_quality")
        if isinstance(quality, dict) and any(v is not None for v in quality.values()):
            story.append(Paragraph("Content Quality", styles["h2"]))
            rows = [
                [label.replace("_", " ").replace("score", "").strip().title(), f"{value}/100"]
                for label, value in quality.items()
                if value is not None
            ]
            table = Table(rows, colWidths=[2.2 * inch, 1.2 * inch])
            table.setStyle(TableStyle([
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e5e7eb")),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
            ]))
            story.append(table)

    @staticmethod
    def _add_field(story: list, styles: dict, label: str, value: Any) -> None:
        pretty = str(label).replace("_", " ").capitalize()
        if isinstance(value, (list, tuple)):
            if not value:
                return
            story.append(Paragraph(f"<b>{escape(pretty)}:</b>", styles["body"]))
            for item in value:
                story.append(Paragraph(escape(str(item)), styles["bullet"], bulletText="-"))
        elif value not in (None, ""):
            story.append(Paragraph(f"<b>{escape(pretty)}:</b> {escape(str(value))}", styles["body"]))

    @classmethod
    def _add_listing_pack(cls, story: list, styles: dict, view: ReportView) -> None:
        pack = view.listing_pack
        if pack is None:
            raw = view.detailed_analysis.get("listing_pack")
            pack = ListingPack.model_validate(raw) if isinstance(raw, dict) else None
        if pack is None:
            return

        story.append(Paragraph("Your Listing Pack", styles["h1"]))
        if pack.title:
            story.append(Paragraph("Optimised Title", styles["h2"]))
            story.append(Paragraph(escape(pack.title), styles["body"]))
        if pack.bullets:
            story.append(Paragraph("Bullet Points", styles["h2"]))
            for bullet in pack.bullets:
                story.append(Paragraph(escape(bullet), styles["bullet"], bulletText="•"))
        if pack.description:
            story.append(Paragraph("Description", styles["h2"]))
            story.append(Paragraph(escape(pack.description), styles["body"]))

        tiers = [
            ("Primary", pack.keywords.primary),
            ("Secondary", pack.keywords.secondary),
            ("Long tail", pack.keywords.long_tail),
        ]
        if any(words for _, words in tiers):
            story.append(Paragraph("Keyword Strategy", styles["h2"]))
            for label, words in tiers:
                cls._add_field(story, styles, label, ", ".join(words) if words else None)

        briefs = pack.images.model_dump(by_alias=False)
        if any(briefs.values()):
            story.append(Paragraph("Image Plan", styles["h2"]))
            for slot, brief in briefs.items():
                cls._add_field(story, styles, slot, brief)

        if pack.compliance:
            story.append(Paragraph("Compliance", styles["h2"]))
            for note in pack.compliance:
                story.append(Paragraph(escape(note), styles["bullet"], bulletText="-"))

    # =========================================================================
    # HTML
    # =========================================================================

    @staticmethod
    def build_html(
        name: str,
        mode: DeliveryMode,
        payload: Optional[ReportPayload] = None,
        has_attachment: bool = False,
    ) -> str:
        """HTML body of the delivery e-mail. Without a payload this is the welcome message."""
        greeting = escape(name or "there")

        if payload is None:
            body = (
                "<p>Thanks for trying E-CTRL, your Amazon optimisation partner.</p>"
                "<p>Run an audit or create a listing pack any time and we'll e-mail the results here.</p>"
            )
        else:
            view = ReportView.from_payload(payload)
            if mode == DeliveryMode.AUDIT:
                intro = (
                    '<h3 style="color: #059669;">Your Amazon Audit Report is Ready</h3>'
                    "<p>We've analysed your Amazon listing and prepared an audit with actionable "
                    "optimisation recommendations.</p>"
                )
            else:
                intro = (
                    '<h3 style="color: #059669;">Your Amazon Listing Pack is Ready</h3>'
                    "<p>We've created a listing pack to help you launch successfully on Amazon.</p>"
                )
            parts = [intro, f"<p><strong>Score: {view.score}/100</strong> ({score_label(view.score)})</p>"]
            if view.highlights:
                items = "".join(f"<li>{escape(str(h))}</li>" for h in view.highlights[:5])
                parts.append(f"<h4>Highlights</h4><ul>{items}</ul>")
            if view.recommendations:
                items = "".join(f"<li>{escape(str(r))}</li>" for r in view.recommendations[:5])
                parts.append(f"<h4>Top recommendations</h4><ul>{items}</ul>")
            if has_attachment:
                parts.append("<p><strong>Your detailed report is attached to this email as a PDF!</strong></p>")
            body = "".join(parts)

        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f'<h1 style="color: #2563eb; text-align: center;">{BRAND_NAME}</h1>'
            f'<h2 style="color: #1f2937;">Hello {greeting}!</h2>'
            f"{body}"
            '<div style="margin: 30px 0; padding: 20px; background-color: #f3f4f6; border-radius: 8px;">'
            "<h4 style=\"margin-top: 0;\">Ready to scale your Amazon business?</h4>"
            f'<p><a href="{CONSULTATION_URL}">Book a free 15-minute consultation</a></p>'
            "</div>"
            '<p style="color: #6b7280; font-size: 14px;">If you have any questions, reply to this email.</p>'
            "</div>"
        )

    @staticmethod
    def build_text(name: str, mode: DeliveryMode, payload: Optional[ReportPayload] = None) -> str:
        """Plain-text alternative for providers that send multipart messages."""
        lines = [f"Hello {name or 'there'}!", ""]
        if payload is None:
            lines.append("Thanks for trying E-CTRL, your Amazon optimisation partner.")
        else:
            view = ReportView.from_payload(payload)
            lines.append(subject_for(mode))
            lines.append(f"Score: {view.score}/100")
            for rec in view.recommendations[:5]:
                lines.append(f"- {rec}")
        lines += ["", f"Book a free consultation: {CONSULTATION_URL}"]
        return "\n".join(lines)


__all__ = [
    "ReportDocumentBuilder",
    "ReportPayload",
    "ReportView",
    "attachment_filename",
    "score_label",
    "subject_for",
]
