"""Excel 导入导出（openpyxl）"""
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import ICON_THEMES, TOOL_CATEGORIES, Tool
from ..domain.errors import ServiceError, ValidationError
from .tool_service import SORT_ORDERS, TOOL_ID_RE, ToolService, normalize_categories

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (表头, 字段, 列宽)
IMPORT_COLUMNS = [
    ("ID", "id", 20),
    ("工具名称", "name", 20),
    ("工具描述", "description", 50),
    ("图标名称", "icon", 15),
    ("图标URL", "icon_url", 30),
    ("图标主题", "icon_theme", 15),
    ("分类", "category", 20),
    ("标签", "tags", 30),
    ("网站URL", "url", 30),
    ("是否精选", "featured", 10),
    ("排序权重", "sort_order", 10),
]
EXPORT_COLUMNS = IMPORT_COLUMNS + [("创建时间", "created_at", 20), ("更新时间", "updated_at", 20)]

TEMPLATE_ROWS = [
    ["example-tool-1", "示例工具", "这是一个示例工具的描述，用于演示Excel导入功能。", "Tool",
     "https://example.com/icon.png", "auto-dark", "AI,效率", "人工智能,自动化,效率工具",
     "https://example.com", "false", "0"],
    ["example-tool-2", "另一个工具", "这是另一个示例工具，展示不同的配置选项。", "Code2",
     "", "auto-light", "开发", "开发工具,编程", "https://another-example.com", "true", "100"],
]

THEME_NOTES = {
    "auto": "根据系统主题自动切换",
    "auto-light": "浅色模式下自动",
    "auto-dark": "深色模式下自动（默认）",
    "light": "强制浅色",
    "dark": "强制深色",
    "none": "无主题",
}
CATEGORY_NOTES = {
    "AI": "人工智能相关工具",
    "效率": "提高工作效率的工具",
    "设计": "设计相关工具",
    "开发": "开发相关工具",
    "其他": "其他类型工具",
}

INSTRUCTIONS = [
    ("ID", "是", "工具的唯一标识符，只能包含字母、数字、连字符和下划线"),
    ("工具名称", "是", "工具的显示名称，长度1-100字符"),
    ("工具描述", "是", "工具的详细描述，长度10-1000字符"),
    ("图标名称", "否", "Lucide图标名称，如Tool、Code2等，默认为Tool"),
    ("图标URL", "否", "自定义图标的URL地址，优先级高于图标名称"),
    ("图标主题", "否", "图标主题，可选值请查看\"选项参考\"工作表，默认auto-dark"),
    ("分类", "是", "工具分类，可选值请查看\"选项参考\"工作表。多个分类用英文逗号分隔"),
    ("标签", "否", "工具标签，多个标签用英文逗号分隔"),
    ("网站URL", "是", "工具的官方网站地址，必须是有效的URL"),
    ("是否精选", "否", "是否为精选工具，可选值请查看\"选项参考\"工作表，默认false"),
    ("排序权重", "否", "排序权重，数字越大排序越靠前，默认0"),
]

_HEADER_TO_FIELD = {header: field for header, field, _ in EXPORT_COLUMNS}


def _append_sheet(workbook: Workbook, title: str, headers: List[str], rows: Iterable[Iterable[Any]],
                  widths: List[int], first: bool = False):
    sheet = workbook.active if first else workbook.create_sheet()
    sheet.title = title
    sheet.append(headers)
    for row in rows:
        sheet.append(list(row))
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
    return sheet


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_template() -> bytes:
    """生成导入模板：工具导入模板、选项参考、导入说明三个工作表"""
    workbook = Workbook()
    _append_sheet(
        workbook, "工具导入模板",
        [header for header, _, _ in IMPORT_COLUMNS],
        TEMPLATE_ROWS,
        [width for _, _, width in IMPORT_COLUMNS],
        first=True,
    )

    options = [("图标主题", theme, THEME_NOTES.get(theme, "")) for theme in ICON_THEMES]
    options.append(("", "", ""))
    options += [("分类", category, CATEGORY_NOTES.get(category, "")) for category in TOOL_CATEGORIES]
    options.append(("", "", ""))
    options += [("是否精选", "true", "精选工具，会在首页突出显示"), ("是否精选", "false", "普通工具（默认）")]
    _append_sheet(workbook, "选项参考", ["字段", "可选值", "说明"], options, [15, 20, 50])

    _append_sheet(workbook, "导入说明", ["字段名", "是否必填", "说明"], INSTRUCTIONS, [15, 10, 80])
    return _to_bytes(workbook)


def read_rows(content: bytes) -> List[Dict[str, Any]]:
    """读取第一个工作表，表头可以是中文列名或字段名"""
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f"无法读取Excel文件: {e}")

    sheet = workbook.worksheets[0]
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        workbook.close()
        return []

    fields = [_HEADER_TO_FIELD.get(str(h).strip(), str(h).strip()) if h is not None else None
              for h in header]
    records = []
    for values in rows:
        if values is None or all(v is None or str(v).strip() == "" for v in values):
            continue
        records.append({field: value for field, value in zip(fields, values) if field})
    workbook.close()
    return records


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def row_to_tool_data(row: Dict[str, Any]) -> Dict[str, Any]:
    """Excel 行转换为工具数据，分类中的无效值被过滤，全部无效时归入“其他”"""
    categories = normalize_categories(_text(row.get("category")))
    valid = [c for c in categories if c in TOOL_CATEGORIES]
    if categories and not valid:
        valid = ["其他"]

    try:
        sort_order = int(float(_text(row.get("sort_order")) or 0))
    except ValueError:
        sort_order = 0

    return {
        "id": _text(row.get("id")),
        "name": _text(row.get("name")),
        "description": _text(row.get("description")),
        "icon": _text(row.get("icon")) or "Tool",
        "icon_url": _text(row.get("icon_url")) or None,
        "icon_theme": _text(row.get("icon_theme")) or "auto-dark",
        "category": valid,
        "tags": _text(row.get("tags")),
        "url": _text(row.get("url")),
        "featured": _text(row.get("featured")).lower() == "true" or row.get("featured") is True,
        "sort_order": sort_order,
    }


async def import_tools(db: AsyncSession, content: Optional[bytes]) -> Dict[str, Any]:
    """
    按 ID 新增或更新工具

    每行单独校验，行号从 2 开始（第 1 行为表头）。

    Returns:
        {"total", "success", "failed", "errors": [{"row", "id", "errors"}]}
    """
    if not content:
        raise ValidationError("请上传Excel文件")
    rows = read_rows(content)
    if not rows:
        raise ValidationError("Excel文件中没有数据")

    results: Dict[str, Any] = {"total": len(rows), "success": 0, "failed": 0, "errors": []}
    for index, row in enumerate(rows):
        row_number = index + 2
        raw = row_to_tool_data(row)
        tool_id = raw.pop("id")
        try:
            if not tool_id or not TOOL_ID_RE.match(tool_id):
                raise ValidationError("数据验证失败", errors=["工具ID只能包含字母、数字、连字符和下划线"])
            data = ToolService.prepare_tool_data(raw)
            tool = await db.get(Tool, tool_id)
            if tool is None:
                tool = Tool(id=tool_id, status="active")
                db.add(tool)
            for key, value in data.items():
                setattr(tool, key, value)
            await db.commit()
            results["success"] += 1
        except ServiceError as e:
            await db.rollback()
            results["failed"] += 1
            results["errors"].append({"row": row_number, "id": tool_id or "未知",
                                      "errors": e.errors or [e.message]})
        except Exception as e:
            await db.rollback()
            logger.error(f"导入第 {row_number} 行失败: {e}")
            results["failed"] += 1
            results["errors"].append({"row": row_number, "id": tool_id or "未知", "errors": [str(e)]})

    logger.info(f"Excel 导入完成: 成功 {results['success']} 条，失败 {results['failed']} 条")
    return results


def _export_value(tool: Tool, field: str) -> Any:
    value = getattr(tool, field)
    if field in ("category", "tags"):
        return ",".join(value or []) if isinstance(value, list) else (value or "")
    if field == "featured":
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return "" if value is None else value


async def export_tools(db: AsyncSession) -> bytes:
    """导出所有上架工具"""
    tools = (await db.scalars(
        select(Tool).where(Tool.status == "active").order_by(*SORT_ORDERS["default"])
    )).all()
    workbook = Workbook()
    _append_sheet(
        workbook, "工具数据",
        [header for header, _, _ in EXPORT_COLUMNS],
        ([_export_value(tool, field) for _, field, _ in EXPORT_COLUMNS] for tool in tools),
        [width for _, _, width in EXPORT_COLUMNS],
        first=True,
    )
    return _to_bytes(workbook)


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"tools-export-{now.strftime('%Y-%m-%dT%H-%M-%S')}.xlsx"
