"""站点地图与 robots.txt"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse, Response
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ...config_loader import AppSettings
from ...db.database import get_db
from ...db.models import TOOL_CATEGORIES
from ...domain.sitemap import SitemapGenerator
from ...services.tool_service import ToolService
from .deps import get_settings

router = APIRouter()


@router.get("/sitemap.xml")
async def sitemap_xml(
    db: AsyncSession = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
):
    try:
        generator = SitemapGenerator(settings.site_base_url)
        generator.add_tool_pages(await ToolService.list_active(db))
        generator.add_category_pages(TOOL_CATEGORIES)
        return Response(content=generator.generate_xml(), media_type="application/xml")
    except Exception as e:
        logger.error(f"生成站点地图失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="生成站点地图失败")


@router.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt(settings: AppSettings = Depends(get_settings)):
    return SitemapGenerator(settings.site_base_url).generate_robots_txt()
