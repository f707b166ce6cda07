#!/usr/bin/env python3
"""
Tailor Cash Book - Web Interface

A Flask JSON API over the cash book: the reconciled ledger with an optional
date range, the "balance the book" action, Excel export and the monthly
summary.
"""
import atexit
import logging
import os
import shutil
import tempfile
import uuid
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from flask import Flask, current_app, jsonify, request, send_file

from api.client import CashBookAPIClient
from api.session import Session
from config import APP_NAME, APP_VERSION, get_config
from output.excel_generator import generate_cashbook_excel
from reconciler.cashbook import CashBookResult
from reconciler.summary import monthly_summary
from services.cashbook_service import UNCHECKED, CashBookService, LoadOutcome, Notification


# Configure logging for production
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Export storage configuration
OUTPUT_FOLDER = tempfile.mkdtemp(prefix='cashbook_output_')
EXPORT_MAX_AGE = timedelta(hours=1)

# Track export files for cleanup (guarded by _output_files_lock)
output_files: Dict[str, datetime] = {}
_output_files_lock = Lock()


# =============================================================================
# Cleanup Functions
# =============================================================================

def cleanup_old_exports() -> None:
    """Remove export files older than EXPORT_MAX_AGE."""
    now = datetime.now()
    with _output_files_lock:
        expired = [name for name, created in output_files.items() if now - created > EXPORT_MAX_AGE]
        for name in expired:
            output_files.pop(name, None)

    for filename in expired:
        filepath = os.path.join(OUTPUT_FOLDER, filename)
        try:
            if os.path.exists(filepath):
                os.unlink(filepath)
                logger.info("Cleaned up old export: %s", filename)
        except OSError as e:
            logger.error("Error cleaning up %s: %s", filename, e)


def cleanup_on_exit() -> None:
    """Clean up the export directory on application exit."""
    shutil.rmtree(OUTPUT_FOLDER, ignore_errors=True)
    logger.info("Cleaned up temporary directories")


atexit.register(cleanup_on_exit)


# =============================================================================
# Helpers
# =============================================================================

def _service() -> CashBookService:
    return current_app.config['CASHBOOK_SERVICE']


def _session() -> Session:
    return Session.from_authorization_header(request.headers.get('Authorization'))


def _error(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({'error': message}), status


def _notification_response(notification: Notification) -> Tuple[Any, int]:
    if notification.is_error:
        status = notification.status_code or 502
        if status < 400:
            status = 502
        return jsonify({'error': notification.message, 'level': notification.level}), status
    return jsonify({'notification': notification.to_dict()}), 200


def _load(session: Session) -> LoadOutcome:
    return _service().refresh(session)


def _header_facts(result: CashBookResult) -> Dict[str, Any]:
    summary = result.summary()
    last_balanced = summary['last_balanced_date']
    summary['last_balanced_date'] = last_balanced.isoformat() if last_balanced else None
    return summary


# =============================================================================
# App Factory
# =============================================================================

def create_app(service: Optional[CashBookService] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        service: Cash book service to use (one backed by the configured REST
                 API is built if omitted)
    """
    flask_app = Flask(__name__)
    flask_app.config['CASHBOOK_SERVICE'] = service or CashBookService(CashBookAPIClient())

    @flask_app.before_request
    def require_token():
        if request.endpoint in (None, 'health_check', 'static'):
            return None
        if not _session().is_authenticated:
            return _error('Not authorized, no token', 401)
        return None

    @flask_app.route('/api/cashbook')
    def get_cashbook():
        """Reconciled ledger rows within an optional [start, end] range."""
        start = request.args.get('start') or None
        end = request.args.get('end') or None

        outcome = _load(_session())
        if outcome.snapshot is None:
            return _notification_response(outcome.notification)
        snapshot = outcome.snapshot

        try:
            rows = snapshot.rows(start, end)
        except ValueError as e:
            return _error(str(e), 400)

        date_format = get_config().display_date_format
        result = snapshot.result
        return jsonify({
            'rows': [row.to_dict(date_format) for row in rows],
            'totalRows': len(result.rows),
            'segments': [segment.to_dict() for segment in result.segments],
            'summary': _header_facts(result),
            'finalClosing': {'cash': result.final_cash, 'bank': result.final_bank},
            'lastBalancedDate': (
                result.last_balanced_date.isoformat() if result.last_balanced_date else None
            ),
            'latestCheckpointId': snapshot.latest_checkpoint_id,
            'issues': [issue.to_dict() for issue in result.issues],
            'generatedAt': result.generated_at.isoformat(),
        })

    @flask_app.route('/api/cashbook/balance', methods=['POST'])
    def balance_cashbook():
        """Create a balance record for everything created since the last one."""
        body = request.get_json(silent=True) or {}
        expected = body['basedOnCheckpointId'] if 'basedOnCheckpointId' in body else UNCHECKED

        outcome = _service().balance_cashbook(_session(), expected_checkpoint_id=expected)
        response, status = _notification_response(outcome.notification)
        if outcome.checkpoint is None:
            return response, status

        payload = response.get_json()
        payload['checkpoint'] = outcome.checkpoint.to_dict()
        if outcome.reload is not None and outcome.reload.snapshot is not None:
            result = outcome.reload.snapshot.result
            payload['finalClosing'] = {'cash': result.final_cash, 'bank': result.final_bank}
        logger.info(
            "Cashbook balanced: %d transactions closed into %s",
            outcome.pending.transaction_count, outcome.checkpoint.id,
        )
        return jsonify(payload), 201

    @flask_app.route('/api/cashbook/export')
    def export_cashbook():
        """Download the (optionally filtered) cash book as an Excel file."""
        start = request.args.get('start') or None
        end = request.args.get('end') or None

        outcome = _load(_session())
        if outcome.snapshot is None:
            return _notification_response(outcome.notification)
        snapshot = outcome.snapshot

        try:
            rows = snapshot.rows(start, end)
        except ValueError as e:
            return _error(str(e), 400)

        cleanup_old_exports()
        output_filename = f"cashbook_{uuid.uuid4().hex[:8]}.xlsx"
        output_path = os.path.join(OUTPUT_FOLDER, output_filename)
        generate_cashbook_excel(
            snapshot.result,
            output_path,
            rows=rows,
            transactions=snapshot.transactions,
            currency=get_config().get('currency'),
        )

        with _output_files_lock:
            output_files[output_filename] = datetime.now()

        logger.info("Cash book exported: %s (%d rows)", output_filename, len(rows))
        return send_file(
            output_path,
            as_attachment=True,
            download_name=f"cashbook_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
        )

    @flask_app.route('/api/summary/monthly')
    def get_monthly_summary():
        """Income, expense and net per month."""
        outcome = _load(_session())
        if outcome.snapshot is None:
            return _notification_response(outcome.notification)
        return jsonify([entry.to_dict() for entry in monthly_summary(outcome.snapshot.transactions)])

    @flask_app.route('/health')
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'app': APP_NAME,
            'version': APP_VERSION,
            'timestamp': datetime.now().isoformat()
        })

    @flask_app.errorhandler(404)
    def not_found(e):
        return _error('Not found', 404)

    @flask_app.errorhandler(500)
    def internal_error(e):
        """Handle internal server error."""
        logger.error("Internal server error: %s", e)
        return _error('An internal error occurred. Please try again.', 500)

    return flask_app


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

    logger.info("Starting %s v%s on port %d", APP_NAME, APP_VERSION, port)
    create_app().run(host='0.0.0.0', port=port, debug=debug)
