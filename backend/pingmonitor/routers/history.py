"""History API - paginated probe results, hourly aggregates and outages."""
import math
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..errors import QueryError
from ..models import Outcome
from ..schemas.ping import (
    HourlyAverage,
    HourlyFailures,
    HourlySeriesOut,
    OutageOut,
    Pagination,
    PingDataPage,
    ProbeResultOut,
)
from ..services import Services, get_services
from ..services.result_store import QueryFilter
from ..utils.timeutil import format_local, local_now, parse_instant

router = APIRouter(prefix="/api", tags=["history"])


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_instant(value)
    except ValueError:
        raise QueryError(f"Invalid {name}: {value!r}") from None


@router.get(
    "/ping-data",
    response_model=PingDataPage,
    response_model_exclude_unset=True,
)
async def get_ping_data(
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=0, description="Rows per page, 0 for all rows"),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    status: Optional[Outcome] = Query(default=None),
    services: Services = Depends(get_services),
):
    """Probe results newest-first, optionally filtered by date range and status."""
    if limit is None:
        limit = services.settings.max_history_per_page

    query_filter = QueryFilter(
        start=_parse_date(start_date, "startDate"),
        end=_parse_date(end_date, "endDate"),
        status=status,
        page=page,
        page_size=limit,
    )
    results, total = await services.store.query(query_filter)

    data = [ProbeResultOut.from_result(r) for r in results]
    if not query_filter.paginated:
        return PingDataPage(data=data)

    return PingDataPage(
        data=data,
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        ),
    )


@router.get("/ping-data/{result_id}", response_model=ProbeResultOut)
async def get_ping_result(result_id: int, services: Services = Depends(get_services)):
    """A single probe result."""
    result = await services.store.get(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Probe result not found")
    return ProbeResultOut.from_result(result)


@router.get("/hourly", response_model=HourlySeriesOut)
async def get_hourly(
    hours: int = Query(default=24, ge=1, le=24 * 31),
    end: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
):
    """Hourly average latency (with gaps) and hourly failure counts."""
    window_end = _parse_date(end, "end") or local_now()
    series = await services.aggregation.hourly_averages(window_end, hours)
    return HourlySeriesOut(
        averages=[
            HourlyAverage(hour=format_local(hour), avg_ping_time=avg)
            for hour, avg in series.averages
        ],
        failures=[
            HourlyFailures(hour=format_local(hour), count=count)
            for hour, count in series.failures
        ],
    )


@router.get("/outages", response_model=List[OutageOut])
async def get_outages(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    min_seconds: int = Query(default=300, ge=0, alias="minSeconds"),
    limit: int = Query(default=10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Runs of consecutive failed probes lasting at least minSeconds."""
    outages = await services.aggregation.outages(
        start=_parse_date(start_date, "startDate"),
        end=_parse_date(end_date, "endDate"),
        min_duration=timedelta(seconds=min_seconds),
        limit=limit,
    )
    return [
        OutageOut(
            start=format_local(o.start),
            end=format_local(o.end) if o.end else None,
            duration_seconds=o.duration.total_seconds(),
            failures=o.failures,
            ongoing=o.ongoing,
        )
        for o in outages
    ]
