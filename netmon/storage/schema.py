"""
Database schema definition for netmon.
"""

SCHEMA_SQL = """
-- Devices table: monitored devices and their management endpoint
CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    address TEXT NOT NULL UNIQUE,
    owner TEXT,
    monitoring_enabled INTEGER NOT NULL DEFAULT 1,
    port INTEGER NOT NULL DEFAULT 161,
    snmp_version TEXT NOT NULL DEFAULT 'v2c',
    credential TEXT NOT NULL,
    timeout REAL NOT NULL DEFAULT 5.0,
    retries INTEGER NOT NULL DEFAULT 3,
    poll_interval INTEGER NOT NULL DEFAULT 300,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_poll_time TIMESTAMP,
    last_poll_status TEXT,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    error_message TEXT
);

-- Indexed records: one row per (device, table index)
CREATE TABLE IF NOT EXISTS interfaces (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id INTEGER NOT NULL REFERENCES devices(id) ON DELETE CASCADE,
    record_index INTEGER NOT NULL,
    attributes TEXT NOT NULL,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    UNIQUE (device_id, record_index)
);

CREATE TABLE IF NOT EXISTS system_units (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id INTEGER NOT NULL REFERENCES devices(id) ON DELETE CASCADE,
    record_index INTEGER NOT NULL,
    attributes TEXT NOT NULL,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    UNIQUE (device_id, record_index)
);

CREATE TABLE IF NOT EXISTS udp_listeners (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id INTEGER NOT NULL REFERENCES devices(id) ON DELETE CASCADE,
    record_index INTEGER NOT NULL,
    attributes TEXT NOT NULL,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    UNIQUE (device_id, record_index)
);

-- Singleton profiles: at most one row per device
CREATE TABLE IF NOT EXISTS system_info (
    device_id INTEGER PRIMARY KEY REFERENCES devices(id) ON DELETE CASCADE,
    attributes TEXT NOT NULL,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS ip_profiles (
    device_id INTEGER PRIMARY KEY REFERENCES devices(id) ON DELETE CASCADE,
    attributes TEXT NOT NULL,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS icmp_profiles (
    device_id INTEGER PRIMARY KEY REFERENCES devices(id) ON DELETE CASCADE,
    attributes TEXT NOT NULL,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS udp_profiles (
    device_id INTEGER PRIMARY KEY REFERENCES devices(id) ON DELETE CASCADE,
    attributes TEXT NOT NULL,
    updated_at TIMESTAMP
);

-- Trap events: deduplicated by hash_key
CREATE TABLE IF NOT EXISTS trap_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    hash_key TEXT NOT NULL UNIQUE,
    source_ip TEXT NOT NULL,
    source_port INTEGER,
    community TEXT,
    version TEXT,
    trap_oid TEXT,
    enterprise_oid TEXT,
    generic_trap INTEGER,
    specific_trap INTEGER,
    uptime INTEGER,
    varbinds TEXT,
    raw_data TEXT,
    trap_type TEXT,
    severity TEXT,
    description TEXT,
    duplicate_count INTEGER NOT NULL DEFAULT 1,
    first_occurrence TIMESTAMP,
    last_occurrence TIMESTAMP,
    processed INTEGER NOT NULL DEFAULT 0,
    alert_created INTEGER NOT NULL DEFAULT 0,
    alert_id INTEGER,
    device_id INTEGER
);

-- Alerts derived from trap events
CREATE TABLE IF NOT EXISTS alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    alert_key TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    status TEXT NOT NULL,
    source_type TEXT,
    title TEXT,
    message TEXT,
    device_id INTEGER,
    owner TEXT,
    source_event_id INTEGER,
    created_at TIMESTAMP
);

-- Finished discovery runs
CREATE TABLE IF NOT EXISTS discovery_runs (
    id TEXT PRIMARY KEY,
    target TEXT,
    status TEXT NOT NULL,
    nodes TEXT,
    edges TEXT,
    warnings TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_interfaces_device ON interfaces(device_id);
CREATE INDEX IF NOT EXISTS idx_system_units_device ON system_units(device_id);
CREATE INDEX IF NOT EXISTS idx_udp_listeners_device ON udp_listeners(device_id);
CREATE INDEX IF NOT EXISTS idx_trap_events_source_ip ON trap_events(source_ip);
CREATE INDEX IF NOT EXISTS idx_alerts_key ON alerts(alert_key, created_at);
"""
