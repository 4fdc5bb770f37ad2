"""Usage statistics and client option routes."""

import logging

from fastapi import APIRouter, Request

from plyglot.chat.languages import KNOWN_LANGUAGES, InteractionMode, ResponseStyle
from plyglot.shared.logging_config import LogCategory, log_extra
from plyglot.shared.schemas import LanguageOption, LanguagesResponse, UsageStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/usage-stats", response_model=UsageStatsResponse, response_model_by_alias=True)
async def get_usage_stats(request: Request) -> UsageStatsResponse:
    """Aggregate token usage since the process started."""
    logger.info("API request for usage stats", extra=log_extra(LogCategory.SERVER))
    return UsageStatsResponse.from_snapshot(request.app.state.usage.snapshot())


@router.get("/languages", response_model=LanguagesResponse, response_model_by_alias=True)
async def get_languages(request: Request) -> LanguagesResponse:
    """Languages, styles and interaction modes clients may select."""
    return LanguagesResponse(
        languages=[
            LanguageOption(code=code, name=KNOWN_LANGUAGES[code])
            for code in request.app.state.settings.SUPPORTED_LANGUAGES
        ],
        response_modes=list(ResponseStyle),
        interaction_types=list(InteractionMode),
    )
