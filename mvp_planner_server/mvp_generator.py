"""
MVP plan generation on top of the rotating content provider.
"""

import json
import re
from dataclasses import dataclass

from pydantic import ValidationError

from mvp_planner_server.fallback import build_fallback_plan
from mvp_planner_server.logging_config import get_logger
from mvp_planner_server.models import MvpPlan, MvpPlanRequest
from mvp_planner_server.providers import CONTENT_GEN, TextGenerationRequest
from mvp_planner_server.rotating_client import RotatingClient

logger = get_logger(__name__)

FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")

PROMPT_TEMPLATE = """
You are an expert startup advisor and product strategist. Based on the following startup idea, generate a comprehensive MVP plan.

Startup Idea: {idea}
Industry: {industry}
Target Audience: {target_audience}
Budget Range: {budget}

Please provide a detailed MVP plan with the following structure. Respond ONLY with valid JSON:

{{
  "coreFeatures": ["list of 5-8 essential features for MVP"],
  "techStack": {{
    "frontend": "recommended frontend technology",
    "backend": "recommended backend technology",
    "database": "recommended database",
    "payment": "payment processor if applicable",
    "hosting": "hosting/deployment platform"
  }},
  "monetizationStrategy": "detailed monetization approach with specific revenue models",
  "timeline": {{
    "mvp": "time to build MVP",
    "launch": "time to market launch",
    "growth": "growth phase timeline"
  }},
  "estimatedCost": {{
    "development": "development cost estimate",
    "monthly": "monthly operational cost estimate"
  }},
  "marketAnalysis": {{
    "targetMarket": "size and characteristics of target market",
    "competition": "key competitors and differentiation",
    "opportunity": "market opportunity and potential"
  }},
  "nextSteps": ["list of immediate actionable steps to get started"]
}}

Focus on practical, actionable advice that considers the budget constraints and industry context. Be specific and realistic in your recommendations.
"""


@dataclass
class MvpPlanResult:
    """Generated plan and whether it came from the offline template."""
    plan: MvpPlan
    degraded: bool = False


def build_prompt(request: MvpPlanRequest) -> str:
    return PROMPT_TEMPLATE.format(
        idea=request.idea,
        industry=request.industry,
        target_audience=request.target_audience,
        budget=request.budget,
    )


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model wraps JSON in."""
    return FENCE_RE.sub("", text).strip()


def parse_plan(text: str) -> MvpPlan:
    """
    Parse provider text into a plan.

    Raises:
        ValueError: If the text is not valid plan JSON
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Plan is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Plan JSON must be an object")
    try:
        return MvpPlan.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Plan JSON has the wrong shape: {e.error_count()} errors") from e


class MvpPlanGenerator:
    """Generates MVP plans through the content-gen provider."""

    def __init__(self, client: RotatingClient):
        self.client = client

    async def generate(self, request: MvpPlanRequest) -> MvpPlanResult:
        """
        Generate an MVP plan.

        Provider validation and transient errors propagate. Quota exhaustion
        and unparseable provider output both yield the templated plan with
        degraded=True.
        """
        provider_request = TextGenerationRequest(
            prompt=build_prompt(request),
            context={
                "idea": request.idea,
                "industry": request.industry,
                "target_audience": request.target_audience,
                "budget": request.budget,
            },
        )
        result = await self.client.invoke(CONTENT_GEN, provider_request)

        try:
            plan = parse_plan(result.value)
        except ValueError as e:
            logger.warning("plan_parse_failed", error=str(e), key_id=result.key_id)
            plan = MvpPlan.model_validate(
                build_fallback_plan(
                    request.idea,
                    request.industry,
                    request.target_audience,
                    request.budget,
                )
            )
            return MvpPlanResult(plan=plan, degraded=True)

        if plan.idea is None:
            plan.idea = request.idea
        return MvpPlanResult(plan=plan, degraded=result.degraded)
