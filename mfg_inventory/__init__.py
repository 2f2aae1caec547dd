"""制造 ERP 库存预占与台账服务"""
