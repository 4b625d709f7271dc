"""Hardware access: the RS485 serial bus and the MQTT publisher."""
