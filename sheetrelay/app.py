from typing import Dict, List, Optional

import structlog
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .config import RelayConfig
from .csv_decoder import decode, decode_table
from .errors import RelayError, ValidationError
from .fetcher import SheetFetcher, create_fetcher

logger = structlog.get_logger(__name__)

OUTPUT_FORMATS = ("records", "table")


class ErrorResponse(BaseModel):
    error: str


class TableResponse(BaseModel):
    header: List[str]
    rows: List[List[str]]


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_app(config: RelayConfig, fetcher: Optional[SheetFetcher] = None) -> FastAPI:
    """Build the relay app around an already-loaded configuration."""
    fetcher = fetcher or create_fetcher(config)

    app = FastAPI(title="sheetrelay")
    app.state.config = config
    app.state.fetcher = fetcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get(
        "/api/sheet-data",
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def sheet_data(
        page: Optional[str] = None,
        url: Optional[str] = None,
        output: str = Query("records", alias="format"),
    ):
        """
        Fetch the configured sheet and return its rows as JSON records,
        or as a header/rows pair when format=table
        """
        try:
            if output not in OUTPUT_FORMATS:
                raise ValidationError("Unknown format; expected records or table.")

            target = config.source.resolve(page=page, url=url)
            document = await fetcher.fetch(target)

            if output == "table":
                table = decode_table(document.text, delimiter=config.delimiter)
                logger.info("sheet_data_served", mode=config.source.mode, format=output, rows=len(table.rows))
                return TableResponse(header=table.header, rows=table.rows)

            records: List[Dict[str, str]] = decode(document.text, delimiter=config.delimiter)
            logger.info("sheet_data_served", mode=config.source.mode, format=output, records=len(records))
            return records

        except RelayError as e:
            logger.warning(
                "sheet_data_failed",
                mode=config.source.mode,
                error_type=type(e).__name__,
                status_code=e.status_code,
            )
            return error_response(e.status_code, e.message)

        except Exception as e:
            logger.error("sheet_data_unexpected_error", error=str(e), exc_info=True)
            return error_response(500, RelayError.default_message)

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check():
        return "OK"

    return app
