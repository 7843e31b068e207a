import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from database.models import NetworkConfig
from errors import NotFoundError, UpstreamError
from utils import utcnow, to_z
from .schemas import NetworkRegistration, StatusUpdate, parse_body

logger = logging.getLogger(__name__)


def gateway_url(cid, gateway) -> str:
    if not cid:
        return ""
    if cid.startswith(("http://", "https://")) or not gateway:
        return cid
    return f"{gateway.rstrip('/')}/{cid}"


def network_view(network, gateway=None) -> dict:
    return {
        "id": network.id,
        "networkId": network.network_id,
        "ssid": network.ssid,
        "host": network.host,
        "price": network.price,
        "description": network.description,
        "image": gateway_url(network.image, gateway),
        "ratingCount": network.rating_count or 0,
        "totalRating": network.total_rating or 0,
        "successfulSessions": network.successful_sessions or 0,
        "location": {
            "country": network.country,
            "region": network.region,
            "city": network.city,
            "area": network.area,
            "coordinates": {"latitude": network.latitude or 0, "longitude": network.longitude or 0},
        },
        "contact": {
            "ownerName": network.owner_name,
            "ownerEmail": network.owner_email,
            "adminEmails": network.admin_emails or [],
        },
        "hardware": {
            "deviceType": network.device_type,
            "specifications": {
                "cpu": network.hardware_cpu or "",
                "memory": network.hardware_memory or "",
                "storage": network.hardware_storage or "",
            },
        },
        "status": network.status,
        "createdAt": to_z(network.created_at),
        "lastSeen": to_z(network.last_seen),
    }


class NetworkRegistry:
    def __init__(self, database, ipfs_gateway=None):
        self.database = database
        self.ipfs_gateway = ipfs_gateway

    def register(self, body) -> dict:
        """Create or update a hosted network from a registration body."""
        registration = parse_body(NetworkRegistration, body)
        network_id = registration.networkId or str(uuid.uuid4())
        now = utcnow()

        values = dict(
            ssid=registration.ssid,
            host=registration.host.lower() if registration.host else None,
            price=registration.price,
            description=registration.description,
            image=registration.image,
            country=registration.location.country,
            region=registration.location.region,
            city=registration.location.city,
            area=registration.location.area,
            latitude=registration.location.coordinates.latitude,
            longitude=registration.location.coordinates.longitude,
            owner_name=registration.contact.ownerName,
            owner_email=registration.contact.ownerEmail,
            admin_emails=list(registration.contact.adminEmails),
            device_type=registration.hardware.deviceType,
            hardware_cpu=registration.hardware.specifications.cpu,
            hardware_memory=registration.hardware.specifications.memory,
            hardware_storage=registration.hardware.specifications.storage,
            last_seen=now,
        )

        try:
            with self.database.session_scope() as db:
                network = db.query(NetworkConfig).filter(NetworkConfig.network_id == network_id).first()
                created = network is None
                if created:
                    network = NetworkConfig(network_id=network_id, status="offline", created_at=now, **values)
                    db.add(network)
                else:
                    for key, value in values.items():
                        setattr(network, key, value)
                db.flush()
                result = {"id": network.id, "networkId": network_id, "created": created}
        except SQLAlchemyError as exc:
            logger.exception("Error creating host network %s", network_id)
            raise UpstreamError("Failed to create host network") from exc

        logger.info("Saved NetworkConfig for %s (%s)", registration.ssid, network_id)
        return result

    def list_hosted(self) -> list[dict]:
        """Networks guests can browse: everything not marked offline, newest first."""
        try:
            with self.database.session_scope() as db:
                networks = db.query(NetworkConfig).filter(
                    NetworkConfig.status != "offline"
                ).order_by(NetworkConfig.created_at.desc()).all()
                return [network_view(n, self.ipfs_gateway) for n in networks]
        except SQLAlchemyError as exc:
            logger.exception("Error fetching networks")
            raise UpstreamError("Error fetching networks") from exc

    def get(self, network_id) -> dict:
        with self.database.session_scope() as db:
            network = db.query(NetworkConfig).filter(NetworkConfig.network_id == network_id).first()
            if network is None:
                raise NotFoundError("Network configuration not found")
            return network_view(network, self.ipfs_gateway)

    def update_status(self, network_id, body) -> dict:
        update = parse_body(StatusUpdate, body)
        with self.database.session_scope() as db:
            network = db.query(NetworkConfig).filter(NetworkConfig.network_id == network_id).first()
            if network is None:
                raise NotFoundError("Network configuration not found")
            network.status = update.status
            network.last_seen = utcnow()
            logger.info("Network %s is now %s", network_id, update.status)
            return {"networkId": network_id, "status": update.status}

    def delete(self, network_id):
        with self.database.session_scope() as db:
            network = db.query(NetworkConfig).filter(NetworkConfig.network_id == network_id).first()
            if network is None:
                logger.error("No network configuration found for %s", network_id)
                raise NotFoundError("Network configuration not found")
            db.delete(network)
        logger.info("Deleted NetworkConfig %s", network_id)
