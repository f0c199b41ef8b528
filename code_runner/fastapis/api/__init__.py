"""
Public routes aggregation.
"""
from code_runner.fastapis.tagged_api_router import TaggedAPIRouter

from .help import router as help_router
from .run import router as run_router

router = TaggedAPIRouter()
router.include_router(help_router)
router.include_router(run_router)
