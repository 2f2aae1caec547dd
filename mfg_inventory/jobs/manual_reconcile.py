"""库存对账本地执行脚本"""

import argparse
import logging
from mfg_inventory.db.session import SessionLocal
from mfg_inventory.services.reconciliation_service import ReconciliationService
from mfg_inventory.core.redis import redis_client

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def run_reconcile(dry_run: bool = False, use_cache: bool = True):
    """执行库存对账

    Args:
        dry_run: 试运行模式，只列出余额与台账不一致的物料
        use_cache: 对账后是否失效 Redis 缓存

    Returns:
        试运行返回漂移列表，否则返回处理的物料数
    """
    db = SessionLocal()
    try:
        service = ReconciliationService(db, redis_client if use_cache else None)
        if dry_run:
            drift = service.find_drift()
            for item in drift:
                logger.info(
                    f"漂移: product_id={item['product_id']}, "
                    f"余额={item['recorded']}, 台账={item['calculated']}"
                )
            logger.info(f"试运行模式：发现 {len(drift)} 个物料余额与台账不一致")
            return drift

        result = service.reconcile_inventory()
        logger.info(f"对账完成：处理了 {result['reconciled_count']} 个物料")
        if result.get("skipped_product_ids"):
            logger.warning(f"台账合计不合法，已跳过: {result['skipped_product_ids']}")
        return result["reconciled_count"]
    except Exception as e:
        logger.error(f"对账执行失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

def main(argv=None):
    """主函数"""
    parser = argparse.ArgumentParser(description='库存台账对账工具')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='试运行模式，只报告漂移不修改数据'
    )
    parser.add_argument(
        '--no-cache',
        action='store_true',
        help='不连接 Redis，对账后不失效缓存'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='详细输出模式'
    )
    
    args = parser.parse_args(argv)
    
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    
    try:
        result = run_reconcile(args.dry_run, use_cache=not args.no_cache)
        if args.dry_run:
            print(f"试运行结果：发现 {len(result)} 个物料存在漂移")
        else:
            print(f"对账完成：处理了 {result} 个物料")
    except Exception as e:
        print(f"执行失败: {str(e)}")
        return 1
    
    return 0

if __name__ == "__main__":
    exit(main())
