"""
StoreFlow 核心框架
库存预留与订单生命周期引擎
"""

__version__ = "1.0.0"
