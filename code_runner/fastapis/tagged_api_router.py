"""
TaggedAPIRouter implementation for automatic tag concatenation.
"""
from typing import Sequence

from fastapi import APIRouter, Depends


class TaggedAPIRouter(APIRouter):
    """
    APIRouter whose OpenAPI tag is built from the chain of routers it is
    included through, e.g. `/api` + `/run` -> `/api/run`.
    """

    def __init__(
            self,
            *,
            prefix: str = '',
            tag: str | None = None,
            dependencies: Sequence[Depends] | None = None,
            **kwargs,
    ) -> None:
        segment = tag if tag is not None else prefix
        if segment and not segment.startswith("/"):
            segment = f"/{segment}"
        self._tag_segment: str = segment
        self._full_tag: str = segment

        super().__init__(
            prefix=prefix,
            tags=[segment] if segment else None,
            dependencies=dependencies,
            **kwargs,
        )

    def include_router(self, router: APIRouter, **kwargs) -> None:
        if isinstance(router, TaggedAPIRouter):
            router._full_tag = self._full_tag + router._tag_segment
            if router._full_tag:
                router.tags = [router._full_tag]

        super().include_router(router, **kwargs)
