"""集成测试包。

集成测试特点：
- 通过 httpx.ASGITransport 直接调用 FastAPI 应用，不启动服务器
- 每个用例构建独立的 AppContext，数据源为内存中的 async 函数

运行方式：
    pytest tests/integration/ -v
"""
