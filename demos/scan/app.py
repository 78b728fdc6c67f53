"""
Streamlit Debug Viewer for the Student Card Scanning Pipeline.

Runs the full pipeline on an uploaded photo and shows every intermediate
result so that Hough thresholds and preprocessing toggles can be tuned by eye.

Features:
1. Upload a card photo and toggle crop / enhancement / binarization / OCR
2. Compare thresholds with the sweep chart and accumulator heatmap
3. Inspect merged lines, intersections and quadrilateral candidates
4. Parse the OCR text and validate it against a roster file

Usage:
    streamlit run demos/scan/app.py
"""

import asyncio
import json
import logging
from typing import Optional

import cv2
import matplotlib.pyplot as plt
import numpy as np
import streamlit as st
from PIL import Image

from cardscan.common.config_loader import get_default_config
from cardscan.ocr.matcher import RosterValidator
from cardscan.ocr.parser import parse_engine_result
from cardscan.ocr.roster import InMemoryRoster, record_from_dict
from cardscan.ocr.types import FIELD_NAMES, ConfidenceBand
from cardscan.pipeline import PipelineOrchestrator, ProcessingOptions
from cardscan.utils.visualization import (
    draw_hough_debug,
    plot_threshold_sweep,
    render_accumulator_heatmap,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

BAND_ICONS = {
    ConfidenceBand.HIGH: "🟢",
    ConfidenceBand.MEDIUM: "🟡",
    ConfidenceBand.LOW: "🔴",
    ConfidenceBand.ABSENT: "⚪",
}

# ═══════════════════════════════════════════════════════════════════════════
# STREAMLIT PAGE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

st.set_page_config(
    page_title="Card Scan Debug Viewer",
    page_icon="🪪",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ═══════════════════════════════════════════════════════════════════════════
# SESSION STATE INITIALIZATION
# ═══════════════════════════════════════════════════════════════════════════


@st.cache_resource
def load_orchestrator() -> PipelineOrchestrator:
    """Build the orchestrator once; its OCR engine is reused across reruns."""
    logger.info("Creating pipeline orchestrator")
    return PipelineOrchestrator(get_default_config())


def initialize_session_state():
    """Initialize Streamlit session state variables."""
    if "pipeline_result" not in st.session_state:
        st.session_state.pipeline_result = None


# ═══════════════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════


def load_image_from_upload(uploaded_file) -> Optional[np.ndarray]:
    """
    Load image from Streamlit uploaded file.

    Returns:
        BGR image as numpy array, or None if decoding fails.
    """
    file_bytes = np.asarray(bytearray(uploaded_file.read()), dtype=np.uint8)
    image = cv2.imdecode(file_bytes, cv2.IMREAD_COLOR)
    if image is None:
        st.error("Failed to decode image")
    return image


def to_display(image: np.ndarray) -> Image.Image:
    """Convert a BGR or grayscale array to a PIL image for display."""
    if image.ndim == 2:
        return Image.fromarray(image)
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def parse_thresholds(text: str):
    """Comma separated thresholds; empty means the configured sweep."""
    values = [int(t) for t in text.replace(" ", "").split(",") if t]
    return values or None


# ═══════════════════════════════════════════════════════════════════════════
# RENDERING
# ═══════════════════════════════════════════════════════════════════════════


def render_detection(report, show_raw: bool):
    st.subheader("🔍 Detection")
    diagnostics = report.diagnostics
    selected = diagnostics.selected

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Threshold", selected.threshold)
    col2.metric("Raw / merged lines", f"{selected.raw_count} / {selected.merged_count}")
    col3.metric("Intersections", diagnostics.intersection_count)
    col4.metric("Confidence", f"{report.result.confidence:.1f}%")

    if not report.success:
        st.error(f"❌ {report.failure.user_message()}\n\n`{report.diagnosis}`")

    col_left, col_right = st.columns(2)
    with col_left:
        st.image(
            to_display(draw_hough_debug(diagnostics.edge_map, report, show_raw=show_raw)),
            caption="Edge map with lines, intersections and candidates",
            use_container_width=True,
        )
    with col_right:
        fig = plot_threshold_sweep(diagnostics.sweep)
        st.pyplot(fig)
        plt.close(fig)

    with st.expander("Accumulator heatmap"):
        fig = render_accumulator_heatmap(diagnostics.accumulator, selected.merged_lines)
        st.pyplot(fig)
        plt.close(fig)

    if diagnostics.quads is not None and diagnostics.quads.candidates:
        with st.expander(f"Quadrilateral candidates ({len(diagnostics.quads.candidates)})"):
            st.table(
                [
                    {
                        "score": round(q.score, 1),
                        "aspect_ratio": round(q.aspect_ratio, 3),
                        "area": round(q.area),
                        "valid": q.is_valid,
                    }
                    for q in diagnostics.quads.candidates
                ]
            )


def render_fields(processed, roster_file):
    st.subheader("🔤 OCR Fields")
    config = get_default_config()
    parsed = parse_engine_result(processed.ocr_result, config.parser.weight_by_line_confidence)

    for name in FIELD_NAMES:
        value = getattr(parsed, name)
        icon = BAND_ICONS[parsed.band(name)]
        st.write(f"{icon} **{name}**: {value if value is not None else '-'} ({parsed.confidence[name]})")

    with st.expander("Raw OCR text"):
        st.code(processed.ocr_text or "", language="text")

    if roster_file is not None:
        roster = InMemoryRoster(record_from_dict(item) for item in json.loads(roster_file.getvalue()))
        validation = RosterValidator(roster, config.matcher).validate(parsed)
        student = validation.matched_student
        if validation.is_valid:
            st.success(f"✅ {validation.match_type.value}: {student.id} {student.full_name}")
        elif student is not None:
            st.warning(f"⚠️ {validation.match_type.value}: {student.id} {student.full_name}")
        else:
            st.info("No matching student")

    st.download_button(
        "Download fields (JSON)",
        json.dumps(parsed.to_dict(), ensure_ascii=False, indent=2),
        file_name="fields.json",
        mime="application/json",
    )


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════


def main():
    initialize_session_state()
    st.title("🪪 Student Card Scan: Debug Viewer")

    with st.sidebar:
        st.header("Options")
        enable_crop = st.checkbox("Crop and warp", value=True)
        enable_enhancement = st.checkbox("Enhance contrast", value=True)
        enable_threshold = st.checkbox("Binarize for OCR", value=True)
        enable_ocr = st.checkbox("Run OCR", value=True)
        thresholds_text = st.text_input("Hough thresholds", value="")
        show_raw = st.checkbox("Show raw lines", value=False)
        roster_file = st.file_uploader("Roster JSON", type=["json"])

    uploaded = st.file_uploader("Card photo", type=["jpg", "jpeg", "png"])
    if uploaded is None:
        st.info("Upload a photo of a student ID card to start.")
        return

    image = load_image_from_upload(uploaded)
    if image is None:
        return

    try:
        thresholds = parse_thresholds(thresholds_text)
    except ValueError:
        st.error("Thresholds must be comma separated integers")
        return

    options = ProcessingOptions(
        enable_crop=enable_crop,
        enable_enhancement=enable_enhancement,
        enable_ocr_preprocessing=enable_threshold,
        enable_ocr=enable_ocr,
        hough_thresholds=thresholds,
    )

    with st.spinner("Running pipeline..."):
        result = asyncio.run(load_orchestrator().process(image, options))
    st.session_state.pipeline_result = result

    st.caption(
        " → ".join(f"{s.stage} {s.duration_ms:.0f}ms" for s in result.stages)
        + f" | total {result.total_duration_ms:.0f}ms"
    )

    if result.detection_report is not None:
        render_detection(result.detection_report, show_raw)

    if not result.success:
        error = result.result.error
        if error.stage != "detect_card":
            st.error(f"❌ [{error.reason.error_id}] {error.message}\n\n`{error.reason.message}`")
        return

    processed = result.result.unwrap()
    st.subheader("🖼️ Stages")
    cols = st.columns(4)
    cols[0].image(to_display(processed.original_with_overlay), caption="Overlay")
    cols[1].image(to_display(processed.cropped_card), caption="Cropped")
    cols[2].image(to_display(processed.enhanced_card), caption="Enhanced")
    if processed.thresholded_card is not None:
        cols[3].image(to_display(processed.thresholded_card), caption="Binarized")

    if processed.ocr_result is not None:
        render_fields(processed, roster_file)


if __name__ == "__main__":
    main()
