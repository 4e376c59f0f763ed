"""
SQL statements for the role, user and override tables.
"""

SQL_CREATE_RBAC_TABLES = """
CREATE TABLE IF NOT EXISTS roles (
    id SERIAL PRIMARY KEY,
    name VARCHAR(100) NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS role_permissions (
    id SERIAL PRIMARY KEY,
    role_id INTEGER NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
    resource VARCHAR(50) NOT NULL,
    actions TEXT[] NOT NULL DEFAULT '{}',
    UNIQUE (role_id, resource)
);
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(64) PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    role_id INTEGER NOT NULL REFERENCES roles(id),
    created_at TIMESTAMP NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS user_overrides (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    resource VARCHAR(50) NOT NULL,
    denied_actions TEXT[] NOT NULL DEFAULT '{}',
    allowed_actions TEXT[] NOT NULL DEFAULT '{}',
    UNIQUE (user_id, resource)
);
"""

SQL_GET_ROLE_BY_NAME = """
SELECT id, name, description FROM roles WHERE name = %s
"""

SQL_GET_ROLE_BY_ID = """
SELECT id, name, description FROM roles WHERE id = %s
"""

SQL_LIST_ROLES = """
SELECT id, name, description FROM roles ORDER BY id
"""

SQL_GET_ROLE_PERMISSIONS = """
SELECT resource, actions FROM role_permissions WHERE role_id = %s ORDER BY id
"""

SQL_INSERT_ROLE = """
INSERT INTO roles (name, description) VALUES (%s, %s) RETURNING id
"""

SQL_INSERT_ROLE_PERMISSION = """
INSERT INTO role_permissions (role_id, resource, actions) VALUES (%s, %s, %s)
"""

SQL_GET_USER = """
SELECT id, email, password_hash, role_id, created_at FROM users WHERE id = %s
"""

SQL_GET_USER_OVERRIDES = """
SELECT resource, denied_actions, allowed_actions FROM user_overrides WHERE user_id = %s ORDER BY id
"""
