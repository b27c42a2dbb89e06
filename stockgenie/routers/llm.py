"""
大模型分析路由
POST /api/llm/analyze    - 生成股票分析
GET  /api/llm/models     - 本地可用模型
GET  /api/llm/health     - 大模型服务状态
"""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from stockgenie.models.response import ApiResponse
from stockgenie.services.analysis_service import ANALYSIS_TYPES, get_narrative_service

router = APIRouter(prefix="/api/llm", tags=["大模型分析"])


class AnalyzeRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    analysis_type: str = Field(default="stock-analysis")
    days: int = Field(default=30, ge=1, le=3650)
    include_technical: bool = True
    custom_prompt: str = ""


@router.post("/analyze", response_model=ApiResponse)
async def analyze(body: AnalyzeRequest):
    """调用本地大模型生成分析；大模型不可用时返回 HOLD / 0"""
    if body.analysis_type not in ANALYSIS_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"不支持的分析类型: {body.analysis_type}，支持: {list(ANALYSIS_TYPES)}",
        )
    svc = get_narrative_service()
    result = await svc.analyze(
        body.symbol,
        analysis_type=body.analysis_type,
        days=body.days,
        include_technical=body.include_technical,
        custom_prompt=body.custom_prompt,
    )
    if result["status"] != "success":
        return ApiResponse.fail(result["analysis"], message="分析失败", data=result)
    return ApiResponse.ok(data=result)


@router.get("/models", response_model=ApiResponse)
async def list_models():
    models = await get_narrative_service().models()
    return ApiResponse.ok(data={"models": models, "count": len(models)})


@router.get("/health", response_model=ApiResponse)
async def llm_health():
    return ApiResponse.ok(data=await get_narrative_service().available())
