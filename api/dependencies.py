"""
API依赖项 - 从 app.state 取出在 lifespan 中构建的组件
"""
from fastapi import Depends, Request

from application.ports.notifications import NotificationSink
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentService
from application.services.reconciliation_service import ReconciliationEngine
from infrastructure.unit_of_work import sqlalchemy_uow_factory


def get_session_factory(request: Request):
    return request.app.state.session_factory


def get_uow_factory(session_factory=Depends(get_session_factory)):
    return sqlalchemy_uow_factory(session_factory)


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_notification_sink(request: Request) -> NotificationSink:
    return request.app.state.notification_sink


async def get_payment_service(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    uow_factory=Depends(get_uow_factory),
) -> PaymentService:
    return PaymentService(gateway=gateway, uow_factory=uow_factory)


async def get_reconciliation_engine(
    uow_factory=Depends(get_uow_factory),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> ReconciliationEngine:
    return ReconciliationEngine(uow_factory=uow_factory, notifier=notifier)
