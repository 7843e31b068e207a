import logging

from flask import Flask, Blueprint, Response, current_app, jsonify, request, abort
from flasgger import Swagger
from sqlalchemy.exc import SQLAlchemyError

import config
from database.db import Database
from errors import ZaaNetError, ValidationError, NotFoundError, InvalidTokenError, SessionExpiredError
from networks.registry import NetworkRegistry
from networks.schemas import ExportRequest, TokenCheck, parse_body
from sessions.validator import TokenValidator
from sync_worker import EventSyncWorker
from telemetry.aggregator import TelemetryAggregator
from telemetry.export import export_telemetry, export_to_csv
from telemetry.timerange import resolve_window
from users import UserRegistry
from utils import utcnow

logger = logging.getLogger(__name__)

bp = Blueprint("zaanet", __name__)

# operator-only paths, checked against ADMIN_ALLOWED_IPS
RESTRICTED_PREFIXES = ("/admin/", "/sync-events", "/sync/")


class Services:
    """Everything a request handler needs, built once per app."""

    def __init__(self, database, ledger=None, secret=None, ipfs_gateway=None,
                 lookback_blocks=None, pending_ttl_hours=None, admin_allowed_ips=None):
        secret = secret or config.JWT_SECRET
        ipfs_gateway = ipfs_gateway if ipfs_gateway is not None else config.IPFS_GATEWAY
        self.database = database
        self.validator = TokenValidator(database, secret)
        self.sync_worker = EventSyncWorker(
            database,
            ledger,
            secret,
            lookback_blocks=lookback_blocks if lookback_blocks is not None else config.SYNC_LOOKBACK_BLOCKS,
            pending_ttl_hours=pending_ttl_hours if pending_ttl_hours is not None else config.PENDING_SESSION_TTL_HOURS,
        )
        self.aggregator = TelemetryAggregator(database, ipfs_gateway)
        self.networks = NetworkRegistry(database, ipfs_gateway)
        self.users = UserRegistry(database)
        self.admin_allowed_ips = admin_allowed_ips if admin_allowed_ips is not None else config.ADMIN_ALLOWED_IPS


def services() -> Services:
    return current_app.extensions["zaanet"]


def create_app(database=None, ledger=None, **service_options):
    app = Flask(__name__)
    database = database or Database(config.DATABASE_URL)
    database.init_db()
    if ledger is None and config.RPC_URL and config.CONTRACT_ADDRESS:
        from ledger.client import LedgerClient
        ledger = LedgerClient(config.RPC_URL, config.CONTRACT_ADDRESS)

    app.extensions["zaanet"] = Services(database, ledger, **service_options)
    app.register_blueprint(bp)
    Swagger(app)
    return app


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def window_from_args(default="24h"):
    return resolve_window(
        time_range=request.args.get("timeRange"),
        start=request.args.get("start"),
        end=request.args.get("end"),
        now=utcnow(),
        default=default,
    )


@bp.before_app_request
def limit_remote_addr():
    if request.path.startswith(RESTRICTED_PREFIXES) and request.remote_addr not in services().admin_allowed_ips:
        abort(403)


@bp.app_errorhandler(ZaaNetError)
def handle_zaanet_error(error):
    return jsonify(error.to_dict()), error.status


@bp.app_errorhandler(SQLAlchemyError)
def handle_database_error(error):
    logger.exception("Unhandled database error")
    return jsonify({"error": "Internal server error", "code": "upstream_error"}), 500


@bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Application is healthy
    """
    return jsonify({"status": "ok"})


@bp.route('/sync-events', methods=['GET', 'POST'])
def sync_events():
    """
    Pull new SessionStarted events from the ledger and create pending sessions.
    ---
    tags:
      - Sync
    responses:
      200:
        description: Events synced
        content:
          application/json:
            schema:
              type: object
              properties:
                status:
                  type: string
                  example: Events synced
                created:
                  type: integer
      500:
        description: Ledger or database unavailable; cursor not advanced
    """
    worker = services().sync_worker
    if worker.ledger is None:
        logger.error("Sync requested but no ledger is configured")
        return jsonify({"error": "Failed to sync events", "code": "upstream_error"}), 500
    return jsonify(worker.sync())


@bp.route('/sync/start', methods=['POST'])
def start_sync():
    """
    Start the background event sync loop.
    ---
    tags:
      - Sync
    responses:
      200:
        description: Sync loop started
    """
    services().sync_worker.start(interval_minutes=config.SYNC_INTERVAL_MINUTES)
    return jsonify({"status": "sync started"})


@bp.route('/sync/stop', methods=['POST'])
def stop_sync():
    """
    Stop the background event sync loop.
    ---
    tags:
      - Sync
    responses:
      200:
        description: Sync loop stopped
    """
    services().sync_worker.stop()
    return jsonify({"status": "sync stopped"})


@bp.route('/sync/status', methods=['GET'])
def sync_status():
    """
    Get current sync loop status.
    ---
    tags:
      - Sync
    responses:
      200:
        description: Returns sync loop running status
        content:
          application/json:
            schema:
              type: object
              properties:
                syncStatus:
                  type: string
                  example: running
    """
    status = "running" if services().sync_worker.is_running() else "stopped"
    return jsonify({"syncStatus": status})


@bp.route('/validate-token', methods=['POST'])
def validate_token():
    """
    Validate a session token, starting the session clock on first use.
    ---
    tags:
      - Sessions
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            token:
              type: string
            ip:
              type: string
    responses:
      200:
        description: Token valid, session active
      400:
        description: Body is not an object or a field has the wrong type
      401:
        description: Invalid token or expired session
      404:
        description: Session not found
    """
    check = parse_body(TokenCheck, json_body())
    try:
        session = services().validator.validate(check.token, check.ip or request.remote_addr)
    except (InvalidTokenError, SessionExpiredError, NotFoundError) as e:
        return jsonify({"valid": False, "error": e.message, "code": e.code}), e.status
    return jsonify({"valid": True, "session": session})


@bp.route('/get-token/<session_id>', methods=['GET'])
def get_token(session_id):
    """
    Fetch the token of a pending or active session.
    ---
    tags:
      - Sessions
    parameters:
      - name: session_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Session token
      404:
        description: Session not found or expired
    """
    return jsonify({"token": services().validator.get_token(session_id)})


@bp.route('/get-session/<network_id>/<address>', methods=['GET'])
def get_session(network_id, address):
    """
    Check whether a guest holds an active session on a network.
    ---
    tags:
      - Sessions
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
    responses:
      200:
        description: Active flag
    """
    return jsonify({"active": services().validator.has_active_session(network_id, address)})


@bp.route('/host-network', methods=['POST'])
def host_network():
    """
    Register (or update) a hosted network.
    ---
    tags:
      - Networks
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [ssid, price, description, location, contact]
    responses:
      201:
        description: Network configuration saved
      400:
        description: Validation error naming the offending field
    """
    result = services().networks.register(json_body())
    return jsonify(result), 201


@bp.route('/hosted-networks', methods=['GET'])
def hosted_networks():
    """
    List networks that are not offline, newest first.
    ---
    tags:
      - Networks
    responses:
      200:
        description: List of hosted networks with gateway image URLs
      404:
        description: No hosted networks found
    """
    networks = services().networks.list_hosted()
    if not networks:
        return jsonify({"message": "No hosted networks found"}), 404
    return jsonify(networks)


@bp.route('/host-network/<network_id>/status', methods=['PATCH'])
def update_network_status(network_id):
    """
    Change a network's lifecycle status.
    ---
    tags:
      - Networks
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            status:
              type: string
              enum: [active, maintenance, offline]
    responses:
      200:
        description: Status updated
    """
    return jsonify(services().networks.update_status(network_id, json_body()))


@bp.route('/host-network/<network_id>/delete-failed-network', methods=['DELETE'])
def delete_failed_network(network_id):
    """
    Remove a network registration whose on-chain registration failed.
    ---
    tags:
      - Networks
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Network configuration deleted
      404:
        description: Network configuration not found
    """
    services().networks.delete(network_id)
    return jsonify({"message": "Network configuration deleted"})


@bp.route('/user-info', methods=['POST'])
def user_info():
    """
    Save a user's profile.
    ---
    tags:
      - Users
    responses:
      201:
        description: User info saved
      409:
        description: User already exists
    """
    body = json_body()
    return jsonify(services().users.save(body.get("userInfo", body))), 201


@bp.route('/admin/networks/<network_id>', methods=['GET'])
def network_dashboard(network_id):
    """
    Dashboard for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: timeRange
        in: query
        type: string
        enum: [15m, 1h, 6h, 24h, 7d, 30d]
        default: 1h
      - name: start
        in: query
        type: string
        format: date-time
      - name: end
        in: query
        type: string
        format: date-time
    responses:
      200:
        description: Overview, per-metric summaries, hourly trends and alerts
    """
    return jsonify(services().aggregator.dashboard(network_id, window_from_args("1h")))


@bp.route('/admin/networks/<network_id>/system-health', methods=['GET'])
def system_health(network_id):
    """
    Latest system health sample for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Latest health values, online status and alerts
    """
    return jsonify(services().aggregator.system_health(network_id))


@bp.route('/admin/networks/<network_id>/performance', methods=['GET'])
def performance(network_id):
    """
    Speed test and system series for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: timeRange
        in: query
        type: string
        default: 1h
    responses:
      200:
        description: Series plus average and peak speeds
    """
    return jsonify(services().aggregator.performance(network_id, window_from_args("1h")))


@bp.route('/admin/networks/<network_id>/data-usage', methods=['GET'])
def data_usage(network_id):
    """
    Data usage for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: timeRange
        in: query
        type: string
        default: 24h
    responses:
      200:
        description: Current snapshot, historical totals, trends and top users
    """
    return jsonify(services().aggregator.data_usage(network_id, window_from_args("24h")))


@bp.route('/admin/networks/<network_id>/session-analytics', methods=['GET'])
def session_analytics(network_id):
    """
    Session analytics for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: timeRange
        in: query
        type: string
        description: Optional; all snapshots when omitted
    responses:
      200:
        description: Session totals, device breakdown, hourly activity and trends
    """
    window = None
    if request.args.get("timeRange") or request.args.get("start"):
        window = window_from_args()
    return jsonify(services().aggregator.session_analytics(network_id, window))


@bp.route('/admin/networks/<network_id>/reports', methods=['GET'])
def reports(network_id):
    """
    Hourly or daily report for one network.
    ---
    tags:
      - Admin
    parameters:
      - name: network_id
        in: path
        type: string
        required: true
      - name: type
        in: query
        type: string
        enum: [hourly, daily]
        default: hourly
      - name: startDate
        in: query
        type: string
        format: date-time
      - name: endDate
        in: query
        type: string
        format: date-time
    responses:
      200:
        description: Generated report
    """
    report_type = request.args.get("type", default="hourly", type=str)
    if report_type not in ("hourly", "daily"):
        raise ValidationError(f"Invalid report type: {report_type}")
    return jsonify(services().aggregator.report(
        network_id,
        report_type,
        start=request.args.get("startDate"),
        end=request.args.get("endDate"),
    ))


@bp.route('/admin/global/dashboard', methods=['GET'])
def global_dashboard():
    """
    Cross-network dashboard.
    ---
    tags:
      - Admin
    responses:
      200:
        description: Network counts, overview, performance and per-network breakdown
    """
    return jsonify(services().aggregator.global_dashboard(window_from_args("1h")))


@bp.route('/admin/global/stats', methods=['GET'])
def global_stats():
    """
    Cross-network statistics over a time range.
    ---
    tags:
      - Admin
    parameters:
      - name: timeRange
        in: query
        type: string
        enum: [15m, 1h, 6h, 24h, 7d, 30d]
        default: 24h
    responses:
      200:
        description: Per-network system, speed and usage statistics
    """
    return jsonify(services().aggregator.global_stats(window_from_args("24h")))


@bp.route('/admin/global/alerts', methods=['GET'])
def global_alerts():
    """
    Threshold and offline alerts across all networks.
    ---
    tags:
      - Admin
    responses:
      200:
        description: Alerts grouped by severity, with a summary
    """
    return jsonify(services().aggregator.global_alerts())


@bp.route('/admin/global/networks', methods=['GET'])
def global_networks():
    """
    Every registered network with its live metrics and health.
    ---
    tags:
      - Admin
    responses:
      200:
        description: Networks, online first
    """
    return jsonify(services().aggregator.networks_overview())


@bp.route('/admin/global/export', methods=['POST'])
def global_export():
    """
    Export raw telemetry as JSON or CSV.
    ---
    tags:
      - Admin
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            networks:
              type: array
              items:
                type: string
            timeRange:
              type: string
              default: 24h
            dataTypes:
              type: array
              items:
                type: string
                enum: [metrics, sessions, usage, speed]
            format:
              type: string
              enum: [json, csv]
    responses:
      200:
        description: Export file
    """
    body = request.get_json(silent=True)
    options = parse_body(ExportRequest, {} if body is None else body)
    now = utcnow()
    window = resolve_window(options.timeRange, now=now)
    export = export_telemetry(services().database, window, options.networks or None, options.dataTypes)

    filename = f"zaanet-export-{now.strftime('%Y-%m-%d')}"
    if options.format == "csv":
        return Response(
            export_to_csv(export),
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
        )
    response = jsonify(export)
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}.json"'
    return response
