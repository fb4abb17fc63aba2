import logging
from contextlib import asynccontextmanager
from typing import List

from .config import LOG_LEVEL, INSTRUMENTS, DEFAULT_INSTRUMENT

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("tensorflow").setLevel(logging.WARNING)

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import (
    InsufficientDataError, PredictionNotReadyError, UnknownInstrumentError,
)
from .models import (
    LoadRequest, TrainRequest, StatusResponse, ProgressResponse, MetricsResponse,
    PredictResponse, InstrumentInfo, SessionStatus, ModelInfo, HistoricalPoint,
)
from .session import ForecastSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.session = ForecastSession(DEFAULT_INSTRUMENT)
    try:
        yield
    finally:
        app.state.session.close()


app = FastAPI(title='Crypto Forecast API', lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _session(request: Request) -> ForecastSession:
    return request.app.state.session


def _busy(session):
    raise HTTPException(status_code=409, detail={'status': 'busy', 'instrument': session.instrument})


@app.get('/health')
def health(request: Request):
    session = _session(request)
    return {'status': 'ok', 'instrument': session.instrument, 'model_ready': session.status()['model_ready']}


@app.get('/instruments', response_model=List[InstrumentInfo])
def instruments():
    return [
        InstrumentInfo(key=key, name=meta['name'], symbol=meta['symbol'], enhanced=meta['enhanced'])
        for key, meta in INSTRUMENTS.items()
    ]


@app.get('/status', response_model=SessionStatus)
def status(request: Request):
    return _session(request).status()


@app.post('/load', response_model=SessionStatus)
def load(req: LoadRequest, request: Request):
    """Select an instrument (if given) and load its data."""
    session = _session(request)
    try:
        if req.instrument and req.instrument != session.instrument:
            session.select_instrument(req.instrument)
        series = session.load()
    except UnknownInstrumentError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if series is None:
        _busy(session)
    session.start_price_updates()
    return session.status()


@app.get('/historical', response_model=List[HistoricalPoint])
def historical(request: Request):
    """Return the loaded price/volume series"""
    session = _session(request)
    if session.series is None:
        raise HTTPException(status_code=404, detail='No data loaded. Call /load first.')
    out = session.series.to_frame()
    out['Date'] = out['Date'].dt.strftime('%Y-%m-%d')
    return out.to_dict(orient='records')


@app.post('/train', response_model=StatusResponse)
def train_endpoint(req: TrainRequest, request: Request):
    # training runs on the session's worker thread; poll /progress and /metrics
    session = _session(request)
    try:
        run = session.start_training(req.architecture, epochs=req.epochs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if run is None:
        _busy(session)
    return StatusResponse(status='training_started', instrument=session.instrument)


@app.get('/progress', response_model=ProgressResponse)
def progress(request: Request):
    session = _session(request)
    if session.last_progress is None:
        raise HTTPException(status_code=404, detail='No training progress yet')
    return session.last_progress.to_dict()


@app.get('/metrics', response_model=MetricsResponse)
def metrics(request: Request):
    session = _session(request)
    if session.training_error is not None:
        raise HTTPException(status_code=500, detail=str(session.training_error))
    if session.metrics is None:
        raise HTTPException(status_code=404, detail='No trained model evaluated yet')
    return session.metrics.to_dict()


@app.post('/predict', response_model=PredictResponse)
def predict_endpoint(request: Request):
    session = _session(request)
    try:
        prediction = session.predict()
    except PredictionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if prediction is None:
        _busy(session)
    return PredictResponse(
        instrument=prediction.instrument,
        architecture=prediction.architecture,
        predicted_price=prediction.price,
        current_price=prediction.current_price,
        change_pct=prediction.change_pct,
    )


@app.get('/model-info', response_model=ModelInfo)
def model_info(request: Request):
    info = _session(request).model_info()
    if info is None:
        raise HTTPException(status_code=404, detail='No model selected')
    return info


@app.post('/reset', response_model=StatusResponse)
def reset(request: Request):
    session = _session(request)
    session.reset()
    return StatusResponse(status='reset', instrument=session.instrument)
