# string_art/export.py
"""Threading instructions: CSV of lines, plain-text sequence, PDF report."""
import csv
import math
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from reportlab.graphics.shapes import Circle, Drawing, Line, Rect, String
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Image,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from .coordinate_mapping import calculate_coordinate_mapping

STEP_TABLE_STYLE = TableStyle([
    ("BACKGROUND", (0, 0), (-1, 0), colors.black),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("ALIGN", (0, 0), (-1, -1), "CENTER"),
    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
    ("FONTSIZE", (0, 0), (-1, 0), 11),
    ("FONTSIZE", (0, 1), (-1, -1), 9),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.lightgrey]),
])


def sequence_to_lines(line_sequence: Sequence[int]) -> List[Tuple[int, int]]:
    return [(line_sequence[i], line_sequence[i + 1]) for i in range(len(line_sequence) - 1)]


def write_lines_csv(line_sequence: Sequence[int], csv_path) -> str:
    with open(csv_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["from_pin", "to_pin"])
        for a, b in sequence_to_lines(line_sequence):
            writer.writerow([a, b])
    return str(csv_path)


def read_lines_csv(csv_path) -> List[Tuple[int, int]]:
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        return [(int(row["from_pin"]), int(row["to_pin"])) for row in reader]


def frame_description(parameters) -> str:
    if parameters.shape == "rectangle" and parameters.width and parameters.height:
        return f"{parameters.width:g}x{parameters.height:g}mm"
    return f"{parameters.hoop_diameter:g}mm Diameter"


def format_sequence_txt(result) -> str:
    sequence = ", ".join(str(p) for p in result.line_sequence)
    return (
        "String Art Pin Sequence\n"
        f"Total Pins: {len(result.pin_coordinates)}\n"
        f"Total Lines: {result.lines_drawn}\n"
        f"Thread Length: {result.total_thread_length / 1000:.2f} m\n"
        "\n"
        "Pin Sequence:\n"
        f"{sequence}\n"
    )


def write_sequence_txt(result, txt_path) -> str:
    with open(txt_path, "w", encoding="utf-8") as f:
        f.write(format_sequence_txt(result))
    return str(txt_path)


def template_drawing(result, width: float, height: Optional[float] = None, padding: float = 12) -> Drawing:
    """
    Pin template: frame outline, centre mark, dashed guides and numbered pins,
    scaled to ``width`` points.
    """
    params = result.parameters
    pixel_w, pixel_h = params.pixel_dimensions
    if height is None:
        height = width * pixel_h / pixel_w

    drawing = Drawing(width, height)
    content_w = width - 2 * padding
    content_h = height - 2 * padding
    cx = width / 2
    cy = height / 2

    if params.shape == "rectangle":
        drawing.add(Rect(padding, padding, content_w, content_h,
                         strokeColor=colors.black, strokeWidth=0.5, fillColor=None))
    else:
        drawing.add(Circle(cx, cy, min(content_w, content_h) / 2,
                           strokeColor=colors.black, strokeWidth=0.5, fillColor=None))
    drawing.add(Circle(cx, cy, 1.5, fillColor=colors.black, strokeColor=None))

    guides = [
        (padding, cy, width - padding, cy),
        (cx, padding, cx, height - padding),
        (padding, padding, width - padding, height - padding),
        (padding, height - padding, width - padding, padding),
    ]
    for x0, y0, x1, y1 in guides:
        drawing.add(Line(x0, y0, x1, y1, strokeColor=colors.grey,
                         strokeWidth=0.25, strokeDashArray=[2, 2]))

    mapping = calculate_coordinate_mapping(
        params.img_size, params.shape, params.width, params.height, content_w, content_h
    )
    n_pins = len(result.pin_coordinates)
    perimeter = 2 * (content_w + content_h) if params.shape == "rectangle" else math.pi * content_w
    font_size = max(3.0, min(8.0, perimeter / max(1, n_pins) * 0.6))

    for i, pin in enumerate(result.pin_coordinates):
        tx, ty = mapping.to_target(pin)
        px = padding + tx
        py = height - padding - ty  # PDF y axis points up
        drawing.add(Circle(px, py, 0.6, fillColor=colors.black, strokeColor=None))

        dx = px - cx
        dy = py - cy
        length = math.hypot(dx, dy)
        lx, ly = px, py
        if length > 0:
            lx = px + dx / length * font_size
            ly = py + dy / length * font_size
        drawing.add(String(lx, ly - font_size / 3, str(i), fontSize=font_size, textAnchor="middle"))

    return drawing


def _fit(max_w: float, max_h: float, pixel_w: int, pixel_h: int) -> Tuple[float, float]:
    """Largest (w, h) with the pixel aspect ratio inside max_w x max_h."""
    w = max_w
    h = w * pixel_h / pixel_w
    if h > max_h:
        h = max_h
        w = h * pixel_w / pixel_h
    return w, h


def build_pdf_report(
    result,
    pdf_path,
    preview_png=None,
    title: str = "String Art Threading Instructions",
    rows_per_page: int = 40,
    margins_mm=(15, 15, 18, 18),
) -> str:
    """
    Report page (parameters and statistics), optional preview image, pin
    template and the numbered step table.
    """
    params = result.parameters
    left, right, top, bottom = (x * mm for x in margins_mm)
    Path(pdf_path).parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(
        str(pdf_path),
        pagesize=A4,
        leftMargin=left,
        rightMargin=right,
        topMargin=top,
        bottomMargin=bottom,
    )
    content_width = A4[0] - left - right
    max_figure_height = A4[1] - top - bottom - 80
    styles = getSampleStyleSheet()

    story = []
    story.append(Paragraph(f"<b>{title}</b>", styles["Title"]))
    story.append(Spacer(1, 6))

    story.append(Paragraph("Input Parameters", styles["Heading2"]))
    parameter_rows = [
        ["Frame", frame_description(params)],
        ["Number of Pins", str(len(result.pin_coordinates))],
        ["Number of Lines", str(params.number_of_lines)],
        ["Line Weight", str(params.line_weight)],
        ["Minimum Distance", str(params.min_distance)],
        ["Image Size (Processing)", f"{params.img_size}px"],
    ]
    story.append(Table(parameter_rows, colWidths=[60 * mm, 60 * mm], hAlign="LEFT"))
    story.append(Spacer(1, 10))

    story.append(Paragraph("Statistics", styles["Heading2"]))
    stats_rows = [
        ["Total Lines Drawn", str(result.lines_drawn)],
        ["Total Thread Length", f"{result.total_thread_length / 1000:.2f} meters"],
        ["Processing Time", f"{result.processing_time_ms / 1000:.2f} seconds"],
    ]
    story.append(Table(stats_rows, colWidths=[60 * mm, 60 * mm], hAlign="LEFT"))
    if result.stalled:
        story.append(Spacer(1, 6))
        story.append(Paragraph(
            "Generation stopped early: no valid next pin was left.", styles["Normal"]
        ))

    if preview_png is not None:
        pixel_w, pixel_h = params.pixel_dimensions
        story.append(PageBreak())
        story.append(Paragraph("Preview", styles["Heading2"]))
        image_w, image_h = _fit(content_width, max_figure_height, pixel_w, pixel_h)
        story.append(Image(str(preview_png), width=image_w, height=image_h))

    story.append(PageBreak())
    story.append(Paragraph("Template / Stencil", styles["Heading2"]))
    story.append(Paragraph(frame_description(params), styles["Normal"]))
    story.append(Spacer(1, 6))
    pixel_w, pixel_h = params.pixel_dimensions
    template_w, template_h = _fit(content_width, max_figure_height, pixel_w, pixel_h)
    story.append(template_drawing(result, template_w, template_h))

    story.append(PageBreak())
    story.append(Paragraph("Pin Sequence", styles["Heading2"]))
    story.append(Paragraph(
        "Pin 0 is the first pin of the layout; follow the steps in order.", styles["Normal"]
    ))
    story.append(Spacer(1, 10))

    rows = [[i, a, b] for i, (a, b) in enumerate(sequence_to_lines(result.line_sequence), start=1)]
    header = ["Step", "From Pin", "To Pin"]
    col_widths = [25 * mm, 45 * mm, 45 * mm]
    chunks = [rows] if not rows_per_page or rows_per_page <= 0 else \
             [rows[i:i + rows_per_page] for i in range(0, len(rows), rows_per_page)]

    for idx, chunk in enumerate(chunks):
        table = Table([header] + chunk, colWidths=col_widths)
        table.setStyle(STEP_TABLE_STYLE)
        story.append(table)
        if idx < len(chunks) - 1:
            story.append(PageBreak())

    doc.build(story)
    return str(pdf_path)
