"""
/ and /help endpoints.
"""
from code_runner.fastapis.tagged_api_router import TaggedAPIRouter
from code_runner.models import HELP, HelpResponse

router = TaggedAPIRouter(tag="Help")


@router.get("/", response_model=HelpResponse, response_model_exclude_none=True)
@router.get("/help", response_model=HelpResponse, response_model_exclude_none=True)
async def get_help() -> HelpResponse:
    return HELP
