import json
from unittest.mock import MagicMock, patch

import pytest

from ingestor.constants import DATA_CHANGED_EVENT
from ingestor.services.cache_service import InvalidationPublisher


@pytest.fixture
def mock_redis():
    mock_client = MagicMock()
    with patch("redis.Redis.from_url", return_value=mock_client):
        yield mock_client


def test_publish_data_changed(mock_redis):
    publisher = InvalidationPublisher(channel="cache:test")
    mock_redis.publish.return_value = 2

    assert publisher.publish_data_changed(reason="reorg", fork_point=41) is True

    channel, message = mock_redis.publish.call_args[0]
    payload = json.loads(message)
    assert channel == "cache:test"
    assert payload["event"] == DATA_CHANGED_EVENT
    assert payload["reason"] == "reorg"
    assert payload["fork_point"] == 41
    assert isinstance(payload["at"], int)


def test_publish_failure_is_logged_not_raised(mock_redis):
    publisher = InvalidationPublisher()
    mock_redis.publish.side_effect = Exception("connection refused")

    with patch("ingestor.services.cache_service.logger") as mock_logger:
        assert publisher.publish("data-changed") is False
        mock_logger.error.assert_called_once()


def test_explicit_client_is_used():
    client = MagicMock()
    publisher = InvalidationPublisher(redis_client=client, channel="c")
    publisher.publish("ping")
    client.publish.assert_called_once()
    publisher.close()
    client.close.assert_called_once()
