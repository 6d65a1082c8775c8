"""Urban space analysis using the text mode of the model client."""

import logging
import time

from models.analysis import Analysis
from services.planner.generation_client import TEXT_MODE, ImagePayload, UrbanModelClient
from services.planner.prompts import build_analysis_prompt
from services.planner.response_parser import parse_analysis

LOGGER = logging.getLogger(__name__)


class UrbanSpaceAnalyzer:
    """Ask the model for an assessment of an uploaded photo."""

    def __init__(self, model_client: UrbanModelClient) -> None:
        if model_client is None:
            raise ValueError("Model client must be provided.")
        self.model_client = model_client
        self.prompt = build_analysis_prompt()

    async def analyze(self, image: ImagePayload) -> Analysis:
        """Return the parsed analysis for `image`.

        Transport failures propagate. Unparseable text yields the default
        analysis with `raw_text` populated.
        """
        start_time = time.time()
        response = await self.model_client.generate([image], self.prompt, TEXT_MODE)
        analysis = parse_analysis(response.text or "")
        LOGGER.info(
            "Analysis finished in %.3fs: %d issue(s), %d recommendation(s)%s",
            time.time() - start_time,
            len(analysis.identified_issues),
            len(analysis.recommendations),
            " (degraded)" if analysis.degraded else "",
        )
        return analysis
