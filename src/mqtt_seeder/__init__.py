"""
MQTT Seeder: bootstraps MQTT topics from JSON mapping files.

Subscribes to every configured topic once per connection, seeds each with a
retained init message, and logs inbound traffic tagged by a readable label.
"""
