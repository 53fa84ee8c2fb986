"""Cloud Run用HTTPサーバー（FastAPI）"""
from typing import Any, Optional, Union

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .features.analytics.map_points import build_map_points
from .features.geocoding.domain.models import GeoInput
from .features.geocoding.services.geocoding_service import GeocodingService
from .infrastructure.config.settings import Settings
from .shared.exceptions.errors import ConfigurationError, GeocoderError
from .shared.logging.config import get_logger, setup_logging

# 設定を読み込み
settings = Settings()

# ロギングを設定
setup_logging(
    level=settings.log_level,
    enable_cloud_logging=settings.gcp_logging_enabled,
    project_id=settings.gcp_project_id,
)
logger = get_logger(__name__)

# FastAPIアプリケーションを作成
app = FastAPI(
    title="郵便番号ジオコーディングサービス",
    description="リードの郵便番号を座標に変換し、リード価値マップ用のデータを返すサービス",
    version="1.0.0",
)

# キャッシュとレート制限を全リクエストで共有するため、プロセスで1つだけ作る
_service: Optional[GeocodingService] = None


class GeoItem(BaseModel):
    """ジオコーディング対象"""

    postcode: Optional[str] = None
    value: Union[int, float] = 0


class GeocodeRequest(BaseModel):
    """バッチジオコーディングのリクエスト"""

    items: list[GeoItem] = Field(default_factory=list)
    deadline_ms: Optional[int] = None


def get_geocoding_service() -> GeocodingService:
    """共有のGeocodingServiceを取得（初回呼び出し時に生成）"""
    global _service
    if _service is None:
        _service = GeocodingService.from_settings(settings)
    return _service


@app.on_event("startup")
async def startup_event() -> None:
    """起動時の処理"""
    logger.info("Application starting up")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Provider: {settings.geocoding_provider}, cache: {settings.geocoding_cache_backend}")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """シャットダウン時の処理"""
    global _service
    logger.info("Application shutting down")
    if _service is not None:
        _service.close()
        _service = None


@app.get("/")
async def root() -> dict[str, Any]:
    """ルートエンドポイント"""
    return {
        "service": "郵便番号ジオコーディングサービス",
        "version": "1.0.0",
        "status": "running",
        "environment": settings.environment,
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """ヘルスチェックエンドポイント"""
    return {"status": "healthy"}


@app.get("/debug/geocoder")
def debug_geocoder(
    postcode: Optional[str] = None,
    service: GeocodingService = Depends(get_geocoding_service),
) -> dict[str, Any]:
    """
    1件の郵便番号をジオコーディングして結果をそのまま返す（デバッグ用）

    Args:
        postcode: 郵便番号

    Returns:
        dict[str, Any]: input / result / success / message
    """
    if not postcode:
        return {"error": "Missing postcode param"}

    try:
        # value=1000 のリードとして扱う
        outcome = service.geocode_postcodes([GeoInput(postcode=postcode, value=1000)])
    except GeocoderError as e:
        logger.error(f"Debug geocoding failed for {postcode}: {e}")
        return {"error": str(e)}

    return {
        "input": postcode,
        "result": [result.to_dict() for result in outcome.results],
        "success": outcome.success,
        "message": "Geocoding Successful" if outcome.success else "Geocoding Failed",
    }


@app.post("/geocode")
def geocode(
    request: GeocodeRequest,
    service: GeocodingService = Depends(get_geocoding_service),
) -> dict[str, Any]:
    """
    郵便番号と値のリストをジオコーディング

    Returns:
        dict[str, Any]: 成功した結果（入力順）と失敗したアイテム
    """
    logger.info(f"Received geocoding request: {len(request.items)} items")
    outcome = service.geocode_postcodes(
        [GeoInput(postcode=item.postcode or "", value=item.value) for item in request.items],
        deadline_ms=request.deadline_ms,
    )
    return outcome.to_dict()


@app.post("/map-points")
def map_points(
    request: GeocodeRequest,
    service: GeocodingService = Depends(get_geocoding_service),
) -> dict[str, Any]:
    """
    リード価値マップ用に郵便番号ごとの合計値を返す

    Returns:
        dict[str, Any]: points / failed_count / success
    """
    outcome = service.geocode_postcodes(
        [GeoInput(postcode=item.postcode or "", value=item.value) for item in request.items],
        deadline_ms=request.deadline_ms,
    )
    return {
        "points": [point.to_dict() for point in build_map_points(outcome.results)],
        "failed_count": outcome.failed_count,
        "success": outcome.success,
    }


@app.get("/cache/stats")
def cache_stats(service: GeocodingService = Depends(get_geocoding_service)) -> dict[str, Any]:
    """キャッシュ統計"""
    return service.get_cache_stats()


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """設定・リクエストパラメータ不正"""
    logger.warning(f"Configuration error: {exc}")
    return JSONResponse(status_code=400, content={"message": "Bad request", "detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """グローバル例外ハンドラー"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "detail": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
