"""Celery 后台任务：过期支付对账扫描与支付确认邮件。

API 进程只通过 ``TaskDispatcher`` 按任务名投递，不导入任务实现。
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
