"""
Store schema.

Portable between SQLite and PostgreSQL. ``vote_token`` holds one row per
(name, chain) pair; rows for chains missing from ``chain`` are ignored on read.
"""

SCHEMA = """
CREATE TABLE IF NOT EXISTS chain (
    id TEXT PRIMARY KEY,
    community_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    native_token_id TEXT NOT NULL,
    logo_url TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS token (
    id TEXT NOT NULL,
    chain TEXT NOT NULL,
    name TEXT NOT NULL,
    symbol TEXT NOT NULL,
    decimals INTEGER NOT NULL,
    logo_url TEXT NOT NULL DEFAULT '',
    protocol_id TEXT NOT NULL DEFAULT '',
    is_core BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (id, chain)
);

CREATE TABLE IF NOT EXISTS user_info (
    id TEXT PRIMARY KEY,
    activation_time BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS vote_token (
    name TEXT NOT NULL,
    chain_id TEXT NOT NULL,
    token_id TEXT NOT NULL,
    PRIMARY KEY (name, chain_id)
);
"""
