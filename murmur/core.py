from prometheus_client import Counter, start_http_server
import logging

logger = logging.getLogger(__name__)

MESSAGES_SENT = Counter('murmur_messages_sent_total', 'Messages accepted by the ledger')
MESSAGING_DENIED = Counter('murmur_messaging_denied_total', 'Messaging attempts rejected', ['reason'])
CONVERSATIONS_CREATED = Counter('murmur_conversations_created_total', 'Conversations created')

def init_metrics(port: int = 8001):
    """Initialize Prometheus metrics server"""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except OSError as e:
        logger.warning(f'Prometheus start failed: {e}')
