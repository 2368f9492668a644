import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from .config import configure_logging, settings
from .db import Base, engine, get_db
from . import schemas, services
from .charts import StatsCard, render_month_heatmap_png, render_stats_card_png
from .storage import CompletionStore, HabitStore, SqlCompletionStore, SqlHabitStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("habit api started (env=%s)", settings.app_env)
    yield


app = FastAPI(title="Habit Tracker API", version="1.0.0", lifespan=lifespan)


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_habit_store(db: Session = Depends(get_db)) -> HabitStore:
    return SqlHabitStore(db)


def get_completion_store(db: Session = Depends(get_db)) -> CompletionStore:
    return SqlCompletionStore(db)


def get_today() -> dt.date:
    return dt.date.today()


def require_day(value: str) -> str:
    try:
        return schemas.check_day(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()))
    detail = f"Invalid request data: {location}: {first.get('msg', '')}".rstrip(": ")
    return JSONResponse(status_code=400, content={"detail": detail, "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])


@router.get("/habits", response_model=list[schemas.HabitOut])
def list_habits(habits: HabitStore = Depends(get_habit_store)):
    return habits.list()


@router.get("/habits/{habit_id}", response_model=schemas.HabitOut)
def get_habit(habit_id: int, habits: HabitStore = Depends(get_habit_store)):
    habit = habits.get(habit_id)
    if not habit:
        raise HTTPException(status_code=404, detail="Habit not found")
    return habit


@router.post("/habits", response_model=schemas.HabitOut, status_code=201)
def create_habit(payload: schemas.HabitCreate, habits: HabitStore = Depends(get_habit_store)):
    return habits.create(payload.name, payload.frequency, payload.reminder_time)


@router.patch("/habits/{habit_id}", response_model=schemas.HabitOut)
def update_habit(habit_id: int, payload: schemas.HabitUpdate, habits: HabitStore = Depends(get_habit_store)):
    habit = habits.update(habit_id, payload.changes())
    if not habit:
        raise HTTPException(status_code=404, detail="Habit not found")
    return habit


@router.delete("/habits/{habit_id}", status_code=204)
def delete_habit(habit_id: int, habits: HabitStore = Depends(get_habit_store)):
    if not habits.delete(habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return Response(status_code=204)


@router.get("/habits/{habit_id}/progress", response_model=schemas.HabitProgressOut)
def get_habit_progress(
    habit_id: int,
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
    today: dt.date = Depends(get_today),
):
    if not habits.get(habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return services.habit_progress(completions.list_by_habit(habit_id), habit_id, today)


@router.get("/completions", response_model=list[schemas.CompletionOut])
def list_completions(completions: CompletionStore = Depends(get_completion_store)):
    return completions.list_all()


@router.get("/completions/habit/{habit_id}", response_model=list[schemas.CompletionOut])
def list_completions_for_habit(habit_id: int, completions: CompletionStore = Depends(get_completion_store)):
    return completions.list_by_habit(habit_id)


@router.get("/completions/date/{date}", response_model=list[schemas.CompletionOut])
def list_completions_for_date(
    date: str = Path(pattern=schemas.DATE_PATTERN),
    completions: CompletionStore = Depends(get_completion_store),
):
    return completions.list_by_date(require_day(date))


@router.post("/completions", response_model=schemas.CompletionOut, status_code=201)
def create_completion(
    payload: schemas.CompletionCreate,
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
):
    if not habits.get(payload.habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return completions.create(payload.habit_id, payload.date)


@router.delete("/completions/{habit_id}/{date}", status_code=204)
def delete_completion(
    habit_id: int,
    date: str = Path(pattern=schemas.DATE_PATTERN),
    completions: CompletionStore = Depends(get_completion_store),
):
    if not completions.delete(habit_id, require_day(date)):
        raise HTTPException(status_code=404, detail="Completion not found")
    return Response(status_code=204)


@router.get("/stats", response_model=schemas.StatsOut)
def get_stats(
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
    today: dt.date = Depends(get_today),
):
    return services.compute_stats(completions.list_all(), habits.count(), today)


@router.get("/today", response_model=list[schemas.TodayHabitOut])
def get_today_habits(
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
    today: dt.date = Depends(get_today),
):
    done = {c.habit_id for c in completions.list_by_date(services.fmt_day(today))}
    return [
        schemas.TodayHabitOut(
            **schemas.HabitOut.model_validate(h).model_dump(),
            completed=h.id in done,
        )
        for h in habits.list()
    ]


@router.get("/stats.png")
def get_stats_png(
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
    today: dt.date = Depends(get_today),
):
    s = services.compute_stats(completions.list_all(), habits.count(), today)
    card = StatsCard(
        title="Habit Stats",
        period_label=f"Last {settings.stats_window_days} days",
        **s,
    )
    return Response(content=render_stats_card_png(card), media_type="image/png")


@router.get("/calendar.png")
def get_calendar_png(
    month: Optional[str] = Query(default=None, pattern=schemas.MONTH_PATTERN),
    habit_id: Optional[int] = Query(default=None, alias="habitId"),
    habits: HabitStore = Depends(get_habit_store),
    completions: CompletionStore = Depends(get_completion_store),
    today: dt.date = Depends(get_today),
):
    if month:
        year, mon = (int(p) for p in month.split("-"))
        if not 1 <= mon <= 12:
            raise HTTPException(status_code=400, detail=f"{month} is not a valid month")
    else:
        year, mon = today.year, today.month

    title = "All habits"
    if habit_id is not None:
        habit = habits.get(habit_id)
        if not habit:
            raise HTTPException(status_code=404, detail="Habit not found")
        title = habit.name

    start = dt.date(year, mon, 1)
    end = (start + dt.timedelta(days=32)).replace(day=1) - dt.timedelta(days=1)
    counts = services.completions_per_day(completions.list_all(), start, end, habit_id=habit_id)
    png = render_month_heatmap_png(year, mon, counts, title=title)
    return Response(content=png, media_type="image/png")


app.include_router(router)
