from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class TraceRequest(BaseModel):
    url: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class RedirectStep(BaseModel):
    """One observed hop.

    ``status_code`` 0 means the request failed before any response; the
    failure category is then carried in ``status_text``.
    """

    url: str
    status_code: int = Field(alias="statusCode")
    status_text: str = Field(alias="statusText")
    headers: Dict[str, str] = Field(default_factory=dict)
    response_time: int = Field(alias="responseTime")
    redirect_type: Optional[str] = Field(default=None, alias="redirectType")
    redirect_delay: Optional[int] = Field(default=None, alias="redirectDelay")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400 or self.redirect_type is not None


class RedirectChain(BaseModel):
    steps: List[RedirectStep]
    final_url: str = Field(alias="finalUrl")
    total_time: int = Field(alias="totalTime")
    total_redirects: int = Field(alias="totalRedirects")

    class Config:
        populate_by_name = True
        frozen = True

    @classmethod
    def from_steps(cls, steps: List[RedirectStep], fallback_url: str) -> "RedirectChain":
        return cls(
            steps=list(steps),
            final_url=steps[-1].url if steps else fallback_url,
            total_time=sum(step.response_time for step in steps),
            total_redirects=sum(1 for step in steps if step.is_redirect),
        )
