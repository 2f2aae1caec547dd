#!/usr/bin/env python3
"""
库存预占服务冒烟测试脚本
对运行中的服务走一遍 预占 → 查询 → 释放 流程，验证部署是否正常

用法: python test_app.py [BASE_URL] [PRODUCT_ID]
"""

import requests
import time
import sys
from typing import Dict, Any

BASE_URL = "http://localhost:8000"
API_PREFIX = "/api/v1/stock"
SMOKE_HEADERS = {"X-User-Id": "0", "X-User-Role": "smoke-test"}


class AppTester:
    """应用测试器类"""

    def __init__(self, base_url: str = BASE_URL, product_id: int = 1):
        self.base_url = base_url
        self.api = f"{base_url}{API_PREFIX}"
        self.product_id = product_id
        self.session = requests.Session()
        self.session.headers.update(SMOKE_HEADERS)
        self.results = []
        self.reservation_id = None

    def log_result(self, test_name: str, success: bool, message: str = ""):
        """记录测试结果"""
        status = "✅ PASS" if success else "❌ FAIL"
        result = f"{status} {test_name}"
        if message:
            result += f" - {message}"
        print(result)
        self.results.append({
            "test": test_name,
            "success": success,
            "message": message
        })

    def wait_for_service(self, max_wait: int = 30) -> bool:
        """等待服务启动"""
        print(f"⏳ 等待服务启动 (最多等待 {max_wait} 秒)...")
        start_time = time.time()

        while time.time() - start_time < max_wait:
            try:
                response = self.session.get(f"{self.base_url}/health", timeout=1)
                if response.status_code == 200:
                    print("✅ 服务已启动")
                    return True
            except requests.RequestException:
                pass

            print(".", end="", flush=True)
            time.sleep(1)

        print("\n❌ 服务启动超时")
        return False

    def test_health_check(self) -> bool:
        """测试健康检查接口"""
        print("\n🔍 测试健康检查接口...")
        response = self.session.get(f"{self.base_url}/health")
        if response.status_code == 200:
            data = response.json()
            self.log_result("健康检查", True, f"{data.get('service')}: {data.get('status')}")
            return True
        self.log_result("健康检查", False, f"状态码: {response.status_code}")
        return False

    def test_openapi_schema(self) -> bool:
        """测试 OpenAPI Schema 中的库存路由"""
        print("\n🔍 测试 OpenAPI Schema...")
        response = self.session.get(f"{self.base_url}/openapi.json")
        if response.status_code != 200:
            self.log_result("OpenAPI Schema", False, f"状态码: {response.status_code}")
            return False
        paths = response.json().get("paths", {})
        missing = [p for p in ("reserve", "commit", "release", "adjust", "reconcile")
                   if f"{API_PREFIX}/{p}" not in paths]
        if missing:
            self.log_result("OpenAPI Schema", False, f"缺少路由: {missing}")
            return False
        self.log_result("OpenAPI Schema", True, f"共 {len(paths)} 个路径")
        return True

    def test_stock_level(self) -> bool:
        """查询测试物料的库存水平"""
        print("\n🔍 测试库存查询...")
        response = self.session.get(f"{self.api}/levels/{self.product_id}")
        if response.status_code == 200:
            data = response.json()
            self.log_result("库存查询", True, f"可预占: {data.get('free_quantity')}")
            return True
        self.log_result("库存查询", False, f"状态码: {response.status_code}, {response.text}")
        return False

    def test_reserve(self) -> bool:
        """预占 0.001 个单位"""
        print("\n🔍 测试预占...")
        response = self.session.post(f"{self.api}/reserve", json={
            "product_id": self.product_id,
            "qty": "0.001",
            "unit": "pcs",
            "ref_type": "SMOKE",
            "ref_id": int(time.time()),
        })
        if response.status_code == 200:
            self.reservation_id = response.json()["reservation_id"]
            self.log_result("预占", True, f"reservation_id: {self.reservation_id}")
            return True
        self.log_result("预占", False, f"状态码: {response.status_code}, {response.text}")
        return False

    def test_release(self) -> bool:
        """释放刚才的预占，并确认重复释放返回 404"""
        print("\n🔍 测试释放...")
        if not self.reservation_id:
            self.log_result("释放", False, "没有可释放的预占")
            return False
        payload = {"reservation_id": self.reservation_id, "reason": "smoke test"}
        first = self.session.post(f"{self.api}/release", json=payload)
        second = self.session.post(f"{self.api}/release", json=payload)
        if first.status_code == 200 and second.status_code == 404:
            self.log_result("释放", True, "重复释放被拒绝")
            return True
        self.log_result("释放", False, f"状态码: {first.status_code} / {second.status_code}")
        return False

    def run_all_tests(self) -> Dict[str, Any]:
        """运行所有测试"""
        print("🚀 库存预占服务冒烟测试开始")
        print("=" * 60)

        if not self.wait_for_service():
            print("❌ 服务未正常启动，测试终止")
            return {
                "success": False,
                "message": "服务启动失败",
                "results": self.results
            }

        tests = [
            self.test_health_check,
            self.test_openapi_schema,
            self.test_stock_level,
            self.test_reserve,
            self.test_release,
        ]

        passed = 0
        for test_func in tests:
            try:
                ok = test_func()
            except requests.RequestException as e:
                self.log_result(test_func.__name__, False, f"异常: {str(e)}")
                ok = False
            if ok:
                passed += 1

        total = len(tests)
        print("\n" + "=" * 60)
        print(f"📊 测试结果汇总: {passed}/{total} 通过")
        if passed == total:
            print("🎉 所有测试通过！")
        else:
            print("❌ 存在失败项，请检查服务日志")

        return {
            "success": passed == total,
            "passed": passed,
            "total": total,
            "results": self.results
        }


def main():
    """主函数"""
    base_url = sys.argv[1] if len(sys.argv) > 1 else BASE_URL
    product_id = int(sys.argv[2]) if len(sys.argv) > 2 else 1

    tester = AppTester(base_url, product_id)
    report = tester.run_all_tests()

    sys.exit(0 if report["success"] else 1)


if __name__ == "__main__":
    main()
