from app.hardware.mqtt.mqtt_publisher import LoggingPublisher, MQTTPublisher, Publisher, create_mqtt_client

__all__ = ["LoggingPublisher", "MQTTPublisher", "Publisher", "create_mqtt_client"]
