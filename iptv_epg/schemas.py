from pydantic import BaseModel, Field


class ChannelResponse(BaseModel):
    """Reconciled channel record"""
    xui_id: int = Field(0, description="Channel number (0 when unknown)")
    tvg_id: str = Field("", description="XMLTV channel identifier")
    tvg_name: str = Field("", description="Display name of the channel")
    tvg_logo: str = Field("", description="URL to channel logo")
    group_title: str = Field("", description="Playlist group")
    url: str = Field("", description="Stream URL")
    country: str = Field("", description="Country tag from the playlist")


class ChannelListResponse(BaseModel):
    """Channel listing"""
    timestamp: str
    total: int
    channels: list[ChannelResponse]


class RefreshStep(BaseModel):
    """Outcome of a single refresh step"""
    step: str
    status: str = Field(..., description="success, skipped or failed")
    channels_written: int = 0
    programmes_written: int = 0
    started_at: str
    completed_at: str | None = None
    duration_seconds: float = 0.0
    message: str | None = None


class RefreshResponse(BaseModel):
    """Result of a manually triggered refresh"""
    status: str
    force: bool | None = None
    started_at: str | None = None
    completed_at: str | None = None
    scheduler_armed: bool | None = None
    steps: list[RefreshStep] = Field(default_factory=list)
    message: str | None = None
