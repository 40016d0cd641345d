"""
report_builder.py — PDF and Excel exports of a FullAnalysis.

Generates:
- Analysis Report PDF (summary table, grade/band/component charts,
  component table, top performers, optional action plan)
- Excel Export (students with components and bands, component statistics,
  summary sheet)

Both are read-only consumers of the analysis; nothing here recomputes
statistics. PDFs are A4 with a title / date footer.
"""

import io
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import (
    Image,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.analysis import top_performers
from core.grading import PerformanceBand, get_grade_label
from core.models import FullAnalysis


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK  = colors.HexColor("#1e1b4b")
BRAND_ACCENT = colors.HexColor("#4f46e5")
LIGHT_GREY  = colors.HexColor("#f5f5f5")
WHITE       = colors.white

MPL_PALETTE = ["#4f46e5", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#06b6d4"]

BAND_COLOURS = {
    PerformanceBand.HIGH_ACHIEVER.value: "#10b981",
    PerformanceBand.ABOVE_AVERAGE.value: "#6366f1",
    PerformanceBand.AVERAGE.value: "#f59e0b",
    PerformanceBand.BELOW_AVERAGE.value: "#f97316",
    PerformanceBand.AT_RISK.value: "#ef4444",
}

PLAN_TITLES = [
    ("high_achiever_plan", "High Achievers"),
    ("average_student_plan", "Average Students"),
    ("at_risk_plan", "At-Risk Students"),
    ("teacher_actions", "Teacher Actions"),
    ("hod_insights", "Head of Department Insights"),
]


# ── Helpers ─────────────────────────────────────────────────────────

def _fmt(value: Any, digits: int = 1) -> str:
    try:
        return f"{float(value):.{digits}f}"
    except (TypeError, ValueError):
        return "N/A"


def _footer(canvas, doc, title: str):
    """Draw report title and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    footer_text = f"{title} — Generated {datetime.now().strftime('%d %B %Y, %H:%M')}"
    canvas.drawString(2 * cm, 1.2 * cm, footer_text)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _chart_to_image(fig, width=14 * cm, height=8 * cm) -> Image:
    """Convert a matplotlib figure to a ReportLab Image."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return Image(buf, width=width, height=height)


def _markdown_to_paragraph_html(text: str) -> str:
    """Minimal markdown → reportlab markup: bold, bullets and line breaks."""
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    text = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", text)
    lines = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(("- ", "* ")):
            stripped = "• " + stripped[2:]
        lines.append(stripped.lstrip("#").strip())
    return "<br/>".join(line for line in lines if line)


# ── Charts ──────────────────────────────────────────────────────────

def _grade_distribution_chart(analysis: FullAnalysis) -> Optional[Image]:
    dist = analysis.summary.grade_distribution
    if not sum(dist.values()):
        return None
    labels = list(dist.keys())
    values = list(dist.values())

    fig, ax = plt.subplots(figsize=(6, 3.5))
    bars = ax.bar(labels, values, color=["#10b981", "#6366f1", "#f59e0b", "#f97316", "#ef4444"])
    for bar, val in zip(bars, values):
        ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height() + 0.1,
                str(val), ha="center", va="bottom", fontsize=8, fontweight="bold")
    ax.set_ylabel("Students", fontsize=10)
    ax.set_title("Grade Distribution", fontsize=12, fontweight="bold", pad=12)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    fig.tight_layout()
    return _chart_to_image(fig, width=8 * cm, height=5.5 * cm)


def _band_donut_chart(analysis: FullAnalysis) -> Optional[Image]:
    dist = {k: v for k, v in analysis.band_distribution.items() if v}
    if not dist:
        return None
    fig, ax = plt.subplots(figsize=(4.5, 4.0))
    wedges, _ = ax.pie(
        list(dist.values()),
        colors=[BAND_COLOURS.get(k, "#999999") for k in dist],
        startangle=90,
        wedgeprops={"width": 0.42},
    )
    ax.legend(wedges, [f"{k} ({v})" for k, v in dist.items()],
              loc="lower center", bbox_to_anchor=(0.5, -0.25), ncol=2, fontsize=7)
    ax.set_title("Performance Bands")
    fig.tight_layout()
    return _chart_to_image(fig, width=7 * cm, height=6.5 * cm)


def _component_bar_chart(analysis: FullAnalysis) -> Optional[Image]:
    """Bar chart of mean score per component."""
    if not analysis.component_stats:
        return None
    names = [c.name for c in analysis.component_stats]
    means = [c.mean for c in analysis.component_stats]

    fig, ax = plt.subplots(figsize=(8, 4))
    bars = ax.bar(names, means, color=[MPL_PALETTE[i % len(MPL_PALETTE)] for i in range(len(names))],
                  edgecolor="white", linewidth=0.5)
    for bar, val in zip(bars, means):
        ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height() + 0.5,
                f"{val:.1f}", ha="center", va="bottom", fontsize=8, fontweight="bold")

    ax.set_ylabel("Mean Score", fontsize=10)
    ax.set_title("Component Performance Overview", fontsize=12, fontweight="bold", pad=12)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(axis="x", rotation=30)
    fig.tight_layout()
    return _chart_to_image(fig)


# ── PDF Helpers ─────────────────────────────────────────────────────

def _styles():
    """Return custom paragraph styles."""
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=24, leading=30, textColor=BRAND_DARK,
            spaceAfter=4 * mm,
        ),
        "subtitle": ParagraphStyle(
            "CustomSubtitle", parent=ss["Normal"],
            fontSize=13, leading=17, textColor=BRAND_ACCENT,
            spaceAfter=4 * mm,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=14, leading=18, textColor=BRAND_DARK,
            spaceBefore=6 * mm, spaceAfter=3 * mm,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=10, leading=14, textColor=colors.black,
            spaceAfter=3 * mm,
        ),
        "center": ParagraphStyle(
            "CenterBody", parent=ss["Normal"],
            fontSize=10, leading=14, alignment=TA_CENTER,
        ),
    }


def _make_table(data: List[List], col_widths=None, header_color=BRAND_DARK):
    """Create a styled table."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), header_color),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT_GREY]),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


# ═══════════════════════════════════════════════════════════════════
# 1. ANALYSIS REPORT PDF
# ═══════════════════════════════════════════════════════════════════

def generate_analysis_report_pdf(
    output_path: str,
    title: str,
    analysis: FullAnalysis,
    source_name: str = "All Sheets",
    total_label: str = "Overall Score",
    action_plan: Optional[Dict[str, Any]] = None,
    pass_mark: float = 60,
):
    """Generate the class performance report PDF."""
    st = _styles()
    story = []
    summary = analysis.summary

    story.append(Paragraph(title, st["title"]))
    story.append(Paragraph(f"Source: {source_name}", st["subtitle"]))
    story.append(Paragraph(datetime.now().strftime("%d %B %Y"), st["body"]))

    # ── Summary ────────────────────────────────────────────────────
    story.append(Paragraph("1) Performance Snapshot", st["heading"]))
    summary_data = [
        ["Metric", "Value"],
        ["Students", str(len(analysis.students))],
        [f"Mean {total_label}", _fmt(summary.mean)],
        ["Median", _fmt(summary.median)],
        ["Mode", _fmt(summary.mode)],
        ["Std Deviation", _fmt(summary.std_dev)],
        ["Min / Max", f"{_fmt(summary.min)} / {_fmt(summary.max)}"],
        ["Range", _fmt(summary.range)],
        ["Pass / Fail", f"{summary.pass_count} / {summary.fail_count}"],
        ["Pass Rate", f"{_fmt(summary.pass_rate)}%"],
        ["Pass Mark", f"{_fmt(pass_mark, 0)}%"],
        ["Strongest Component", analysis.strongest_component],
        ["Weakest Component", analysis.weakest_component],
    ]
    story.append(_make_table(summary_data, col_widths=[7.5 * cm, 6.5 * cm]))
    story.append(Spacer(1, 5 * mm))

    grade_chart = _grade_distribution_chart(analysis)
    band_chart = _band_donut_chart(analysis)
    row = [c for c in (grade_chart, band_chart) if c is not None]
    if row:
        visual_tbl = Table([row], colWidths=[8.2 * cm] * len(row))
        visual_tbl.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        story.append(visual_tbl)
    story.append(PageBreak())

    # ── Components ─────────────────────────────────────────────────
    if analysis.component_stats:
        story.append(Paragraph("2) Component Analysis", st["heading"]))
        comp_chart = _component_bar_chart(analysis)
        if comp_chart:
            story.append(comp_chart)
            story.append(Spacer(1, 4 * mm))
        comp_table = [["Component", "Mean", "Median", "Mode", "Std", "Min", "Max", "r (total)"]]
        for c in analysis.component_stats:
            comp_table.append([
                c.name, _fmt(c.mean), _fmt(c.median), _fmt(c.mode),
                _fmt(c.std_dev), _fmt(c.min), _fmt(c.max), _fmt(c.correlation_with_total, 2),
            ])
        story.append(_make_table(comp_table))

    # ── Top performers ─────────────────────────────────────────────
    leaders = top_performers(analysis.students)
    if leaders:
        story.append(Paragraph("3) Top Performers", st["heading"]))
        leader_table = [["Name", "Group", total_label, "Grade", "Band"]]
        for s in leaders:
            leader_table.append([
                s.name, s.group, _fmt(s.total_score),
                get_grade_label(s.total_score), s.performance_band.value,
            ])
        story.append(_make_table(leader_table))

    # ── Action plan ────────────────────────────────────────────────
    if action_plan:
        story.append(PageBreak())
        story.append(Paragraph("4) Differentiated Action Plan", st["heading"]))
        for key, heading in PLAN_TITLES:
            text = action_plan.get(key)
            if text:
                story.append(Paragraph(f"<b>{heading}</b>", st["body"]))
                story.append(Paragraph(_markdown_to_paragraph_html(str(text)), st["body"]))

    doc = SimpleDocTemplate(
        output_path,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, title),
        onLaterPages=lambda c, d: _footer(c, d, title),
    )


# ═══════════════════════════════════════════════════════════════════
# 2. EXCEL EXPORT
# ═══════════════════════════════════════════════════════════════════

def generate_excel_export(
    output_path: str,
    analysis: FullAnalysis,
    title: str,
    total_label: str = "Overall Score",
    pass_mark: float = 60,
):
    """Export students, component statistics and the summary as a styled workbook."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1e1b4b", end_color="1e1b4b", fill_type="solid")
    red_fill = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
    green_fill = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
    yellow_fill = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws, score_col_idx: Optional[int] = None):
        """Header styling, borders, optional score colouring, frozen header, widths."""
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="center")
            if score_col_idx is not None:
                val = row[score_col_idx - 1].value
                if isinstance(val, (int, float)):
                    fill = green_fill if val >= 75 else (yellow_fill if val >= pass_mark else red_fill)
                    for cell in row:
                        cell.fill = fill

        ws.freeze_panes = "A2"
        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb = Workbook()
    components = analysis.component_names

    # ── Sheet 1: Students ───────────────────────────────────────────
    ws_students = wb.active
    ws_students.title = "Students"
    ws_students.sheet_properties.tabColor = "1e1b4b"
    ws_students.append(["Name", "Group", "Sheet"] + components + [total_label, "Grade", "Band"])
    for s in analysis.students:
        ws_students.append(
            [s.name, s.group, s.sheet_name]
            + [s.components.get(c, 0.0) for c in components]
            + [s.total_score, get_grade_label(s.total_score), s.performance_band.value]
        )
    _style_sheet(ws_students, score_col_idx=4 + len(components))

    # ── Sheet 2: Component statistics ──────────────────────────────
    ws_comp = wb.create_sheet(title="Components")
    ws_comp.sheet_properties.tabColor = "4f46e5"
    ws_comp.append(["Component", "Mean", "Median", "Mode", "Std Dev", "Min", "Max", "Correlation with Total"])
    for c in analysis.component_stats:
        ws_comp.append([c.name, round(c.mean, 2), round(c.median, 2), round(c.mode, 2),
                        round(c.std_dev, 2), c.min, c.max, round(c.correlation_with_total, 3)])
    _style_sheet(ws_comp)

    # ── Sheet 3: Summary ────────────────────────────────────────────
    ws_summary = wb.create_sheet(title="Summary")
    ws_summary.sheet_properties.tabColor = "10b981"
    summary = analysis.summary.to_dict()
    ws_summary.append(["Metric", "Value"])
    ws_summary.append(["Report", title])
    for key in ("mean", "median", "mode", "std_dev", "min", "max", "range", "pass_count", "fail_count", "pass_rate"):
        value = summary[key]
        ws_summary.append([key.replace("_", " ").title(), round(value, 2) if isinstance(value, float) else value])
    for letter, count in summary["grade_distribution"].items():
        ws_summary.append([f"Grade {letter}", count])
    for band, count in analysis.band_distribution.items():
        ws_summary.append([band, count])
    ws_summary.append(["Strongest Component", analysis.strongest_component])
    ws_summary.append(["Weakest Component", analysis.weakest_component])
    _style_sheet(ws_summary)

    wb.save(output_path)
