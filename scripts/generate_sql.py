"""
根据 data/initial-tools.json 生成初始数据 SQL

用法：
    python scripts/generate_sql.py [输出文件]

默认输出到 data/initial-tools.sql，可直接在 MySQL 中执行。
"""
import sys
from pathlib import Path

from loguru import logger

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from toolbox.services.seed_service import (  # noqa: E402
    category_stats,
    generate_seed_sql,
    load_seed_file,
    normalize_seed_tool,
)


def main():
    input_file = PROJECT_ROOT / "data" / "initial-tools.json"
    output_file = Path(sys.argv[1]) if len(sys.argv) > 1 else PROJECT_ROOT / "data" / "initial-tools.sql"

    logger.info(f"读取种子数据文件: {input_file}")
    raw_tools = load_seed_file(input_file)
    logger.info(f"转换 {len(raw_tools)} 个工具为SQL语句...")

    sql = generate_seed_sql(raw_tools)
    output_file.write_text(sql, encoding="utf-8")

    tools = [normalize_seed_tool(t) for t in raw_tools]
    logger.info(f"SQL文件生成完成，保存到: {output_file}")
    logger.info(f"  - 总计工具: {len(tools)}")
    logger.info(f"  - 精选工具: {sum(1 for t in tools if t['featured'])}")
    logger.info("  - 分类统计:")
    for category, count in category_stats(tools).items():
        logger.info(f"    {category}: {count} 个")


if __name__ == "__main__":
    main()
