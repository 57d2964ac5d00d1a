from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from checkmate.core.models import CamelModel


class ChatMessage(BaseModel):
    """One chat message as sent by the client UI. Unknown fields are kept."""
    model_config = ConfigDict(extra="allow")

    role: str = Field(..., description="user | assistant | system")
    id: Optional[str] = None
    content: Optional[Any] = None
    text: Optional[str] = None
    parts: Optional[List[Dict[str, Any]]] = None
    data: Optional[Dict[str, Any]] = None


class InvestigateRequest(CamelModel):
    messages: Optional[List[ChatMessage]] = Field(
        None, description="Conversation; content is taken from the last (user) message."
    )
    model: Optional[str] = Field(None, description="Optional model override from AVAILABLE_MODELS.")
    content: Optional[str] = Field(None, description="Direct submission: text or a single link.")
    contents: Optional[List[str]] = Field(None, description="Direct submission: several texts or links.")
    image_base64: Optional[str] = Field(None, description="Direct submission: base64 image or data URL.")
    image: Optional[str] = Field(None, description="Direct submission: image URL or data URL.")

    def direct_submission(self) -> Optional[Dict[str, Any]]:
        fields = {
            "content": self.content,
            "contents": self.contents,
            "imageBase64": self.image_base64,
            "image": self.image,
        }
        present = {k: v for k, v in fields.items() if v is not None}
        return present or None


class AnalyzeTextRequest(BaseModel):
    text: Optional[Any] = Field(None, description="Text to annotate with fact/bias/sentiment spans.")


class VerifyClaimRequest(BaseModel):
    claim: Optional[Any] = Field(None, description="The claim (usually one span's text).")
    context: Optional[Any] = Field(None, description="Surrounding text that disambiguates the claim.")


class PreviewRequest(BaseModel):
    url: Optional[str] = Field(None, description="Tweet/X or TikTok link.")


class SaveInvestigationRequest(CamelModel):
    user_query: str
    user_source_content: Optional[str] = None
    results: Any
    graph_data: Optional[Any] = None
    timestamp: Optional[float] = None


class SaveInvestigationResponse(BaseModel):
    id: str
