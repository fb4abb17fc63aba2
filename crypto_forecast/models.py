from pydantic import BaseModel, Field
from typing import Optional


class LoadRequest(BaseModel):
    instrument: Optional[str] = None


class TrainRequest(BaseModel):
    architecture: str = 'neural'
    epochs: Optional[int] = Field(None, gt=0)


class StatusResponse(BaseModel):
    status: str
    instrument: str
    detail: Optional[str] = None


class DataStats(BaseModel):
    data_points: int
    current_price: float
    price_change_pct: float
    source: str


class ProgressResponse(BaseModel):
    epoch: int
    total_epochs: int
    progress_pct: float
    training_loss: float
    validation_loss: float
    mean_absolute_error: float


class MetricsResponse(BaseModel):
    mae: float
    mse: float
    rmse: float
    r2: float
    accuracy_pct: float
    sample_size: int


class PredictResponse(BaseModel):
    instrument: str
    architecture: str
    predicted_price: float
    current_price: float
    change_pct: float


class InstrumentInfo(BaseModel):
    key: str
    name: str
    symbol: str
    enhanced: bool


class SessionStatus(BaseModel):
    instrument: str
    processing: bool
    data: Optional[DataStats] = None
    current_price: Optional[float] = None
    architecture: Optional[str] = None
    training: Optional[str] = None
    model_ready: bool
    training_error: Optional[str] = None


class ModelInfo(BaseModel):
    architecture: str
    epochs: int
    learning_rate: float
    hidden_units: int
    enhanced: bool
    instrument_name: str


class HistoricalPoint(BaseModel):
    Date: str
    Price: float
    Volume: float

