"""Notification service: fan a paid delivery out to available drivers.

One DriverNotification per driver, written as a single commit. If the
driver lookup or the commit fails nothing is left behind and FanoutError
is raised. A paid delivery with no notifications is picked up again by a
redelivered checkout event or by `flask notify-drivers`. Fanout never
touches the delivery itself, so a failure here cannot undo the payment
transition that triggered it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from otw.errors import FanoutError, NotFoundError
from otw.extensions import db
from otw.models.delivery import DeliveryRequest
from otw.models.driver import Driver, DriverNotification

logger = logging.getLogger(__name__)

DELIVERY_AVAILABLE = "delivery.available"


def get_available_drivers():
    return (
        Driver.query
        .filter_by(is_available=True, is_active=True)
        .order_by(Driver.created_at)
        .all()
    )


def build_payload(delivery):
    """Minimum a driver needs to decide on a job."""
    return {
        "delivery_id": delivery.id,
        "pickup": delivery.pickup_address,
        "dropoff": delivery.dropoff_address,
        "fee": float(delivery.fee),
        "priority": delivery.priority,
        "distance_meters": delivery.distance_meters,
    }


def has_been_fanned_out(delivery):
    """True once any driver has been notified about `delivery`."""
    return bool(db.session.query(
        DriverNotification.query.filter_by(delivery_id=delivery.id).exists()
    ).scalar())


def notify_available_drivers(delivery):
    """Notify every available, active driver about `delivery`.

    Commits its own batch. Any pending changes in the session are expected
    to have been committed by the caller first.

    Returns the number of drivers notified (0 means nothing was written).
    Raises FanoutError if the driver lookup or the batch write fails.
    """
    try:
        drivers = get_available_drivers()
        if not drivers:
            logger.info(f"No available drivers for delivery {delivery.id}")
            return 0

        payload = build_payload(delivery)
        notifications = [
            DriverNotification(
                driver_id=driver.id,
                delivery_id=delivery.id,
                event_type=DELIVERY_AVAILABLE,
                payload=payload,
            )
            for driver in drivers
        ]
        db.session.add_all(notifications)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Driver fanout failed for delivery {delivery.id}: {e}")
        raise FanoutError(f"Driver fanout failed for delivery {delivery.id}") from e

    logger.info(f"Notified {len(notifications)} drivers of delivery {delivery.id}")
    return len(notifications)


def deliveries_awaiting_fanout():
    """Paid deliveries no driver has been told about yet."""
    notified = db.select(DriverNotification.delivery_id).where(
        DriverNotification.delivery_id.isnot(None)
    )
    return (
        DeliveryRequest.query
        .filter(DeliveryRequest.status == "paid")
        .filter(DeliveryRequest.id.notin_(notified))
        .order_by(DeliveryRequest.paid_at)
        .all()
    )


def list_notifications(driver, unread_only=False, limit=50):
    query = DriverNotification.query.filter_by(driver_id=driver.id)
    if unread_only:
        query = query.filter(DriverNotification.read_at.is_(None))
    return (
        query.order_by(DriverNotification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_read(driver, notification_id):
    """Mark one of the driver's notifications read. Flushes only."""
    notification = db.session.get(DriverNotification, notification_id)
    if notification is None or notification.driver_id != driver.id:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        db.session.flush()
    return notification
