# therasuite/kafka.py
import json
import logging
from aiokafka import AIOKafkaProducer

from therasuite.config import KAFKA_BOOTSTRAP, KAFKA_ENABLED, KAFKA_TOPIC_PREFIX

logger = logging.getLogger(__name__)

producer: AIOKafkaProducer | None = None

async def start_kafka():
    global producer
    if not KAFKA_ENABLED:
        logger.info("[kafka] disabled, change events will not be published")
        return
    producer = AIOKafkaProducer(
        bootstrap_servers=KAFKA_BOOTSTRAP,
        value_serializer=lambda v: json.dumps(v, default=str).encode(),
        key_serializer=lambda v: str(v).encode(),
        linger_ms=5,
        acks="all",
        enable_idempotence=True,
    )
    await producer.start()
    logger.info("[kafka] producer started (%s)", KAFKA_BOOTSTRAP)

async def stop_kafka():
    global producer
    if producer:
        await producer.stop()
        producer = None

async def publish_change(collection: str, action: str, record_id: int, centre_id: int, **extra):
    """레코드 변경 이벤트 발행. 실패해도 요청은 성공으로 처리한다."""
    if producer is None:
        return
    payload = {
        "collection": collection,
        "action": action,
        "id": record_id,
        "centre_id": centre_id,
        **extra,
    }
    try:
        await producer.send_and_wait(f"{KAFKA_TOPIC_PREFIX}.{collection}", payload, key=centre_id)
    except Exception as e:
        logger.error("[kafka] failed to publish %s.%s id=%s: %s", collection, action, record_id, e)
