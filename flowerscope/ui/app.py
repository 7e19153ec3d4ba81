"""
Streamlit interface for FlowerScope.

The user picks one photo; the page shows the image annotated by both
detection passes and the flower summary. Failures are shown as plain status
text and never stop the app.

Author: FlowerScope Team
"""

import sys
import logging
import subprocess
from pathlib import Path
from typing import Optional

import numpy as np
import streamlit as st
from PIL import Image

from flowerscope.config import Config
from flowerscope.inference.pipeline import AnalysisResult, AnalysisSession, FlowerAnalyzer

logger = logging.getLogger(__name__)

STALE_MESSAGE = "This analysis was replaced by a newer upload. Upload the photo again to re-run it."

SESSION_KEY = 'flowerscope_session'
RESULT_KEY = 'flowerscope_last_result'


@st.cache_resource
def get_analyzer(config_path: Optional[str] = None) -> FlowerAnalyzer:
    """Load model assets once per Streamlit server process."""
    return FlowerAnalyzer.from_config(Config(config_path))


def get_user_session(state, analyzer: FlowerAnalyzer, max_workers: int = 2) -> AnalysisSession:
    """
    Return the analysis session of one browser session, creating it on first use.

    Sessions are never shared between users, so one user's upload cannot
    cancel another user's request.

    Args:
        state: Per-user state mapping (st.session_state)
        analyzer: Shared analyzer holding the loaded models
        max_workers: Worker threads for the two detection passes

    Returns:
        The user's AnalysisSession
    """
    session = state.get(SESSION_KEY)
    if session is None or session.analyzer is not analyzer:
        session = AnalysisSession(analyzer, max_workers=max_workers)
        state[SESSION_KEY] = session
    return session


def analyze_upload(state, session: AnalysisSession, file_id: str, data: bytes) -> AnalysisResult:
    """
    Analyse an uploaded photo once per upload.

    Streamlit reruns the script on every interaction; the last completed
    result is reused while the same upload stays selected.

    Args:
        state: Per-user state mapping (st.session_state)
        session: The user's analysis session
        file_id: Identifier of the upload
        data: Encoded image bytes

    Returns:
        Final analysis result, possibly stale
    """
    cached = state.get(RESULT_KEY)
    if cached is not None and cached[0] == file_id:
        return cached[1]

    result = session.submit(data).result()
    if not result.stale:
        state[RESULT_KEY] = (file_id, result)
    return result


def fit_for_display(image: Image.Image, max_size) -> np.ndarray:
    """Downscale (never upscale) an image to fit max_size [width, height]."""
    width, height = image.size
    scale = min(max_size[0] / width, max_size[1] / height, 1.0)

    if scale < 1.0:
        image = image.resize((int(width * scale), int(height * scale)), Image.Resampling.BILINEAR)

    return np.asarray(image)


class FlowerScopeApp:
    """Single-page picker and result viewer."""

    def __init__(self, config_path: Optional[str] = None):
        self.config = Config(config_path)
        self.ui_config = self.config.get('ui', {})
        self.analyzer = get_analyzer(config_path)
        self.session = get_user_session(st.session_state, self.analyzer,
                                        max_workers=self.config.get('session.max_workers', 2))

    def show_result(self, result: AnalysisResult, caption: str):
        if result.stale:
            st.warning(STALE_MESSAGE)
            return
        if not result.ok:
            st.error(result.status)
            return

        display_size = self.ui_config.get('max_image_display_size', [800, 600])
        st.image(fit_for_display(result.annotated_image, display_size), caption=caption)

        if result.summary:
            st.text(result.summary)
        else:
            st.info("No flowers detected")

        for name, layer in (('Flower model', result.custom), ('Object detector', result.generic)):
            if layer.error:
                st.warning(f"{name}: {layer.error}")

    def run(self):
        st.set_page_config(
            page_title=self.ui_config.get('title', 'FlowerScope'),
            page_icon=self.ui_config.get('page_icon', '🌸'),
            layout=self.ui_config.get('layout', 'centered')
        )
        st.title(self.ui_config.get('title', 'FlowerScope'))

        if self.analyzer.load_error:
            st.error(self.analyzer.load_error)

        extensions = [ext.lstrip('.') for ext in self.config.get('data.image_extensions', [])]
        uploaded = st.file_uploader("Upload a photo", type=extensions)
        if uploaded is None:
            return

        with st.spinner("Analysing..."):
            result = analyze_upload(st.session_state, self.session, uploaded.file_id, uploaded.getvalue())

        self.show_result(result, caption=uploaded.name)


def main():
    """Streamlit script body."""
    try:
        FlowerScopeApp().run()
    except Exception as e:
        st.error(f"FlowerScope failed: {e}")
        logger.error(f"App failure: {e}")


def launch():
    """Console entry point: start the Streamlit server on this script."""
    script = Path(__file__).resolve()
    try:
        subprocess.run([sys.executable, "-m", "streamlit", "run", str(script)], check=True)
    except subprocess.CalledProcessError as e:
        logger.error(f"Streamlit exited with status {e.returncode}")
        sys.exit(e.returncode)


if __name__ == "__main__":
    main()
