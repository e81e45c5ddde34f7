"""
Database-side change feed for `updates`.

A row trigger publishes every INSERT/UPDATE/DELETE through pg_notify on CHANGE_CHANNEL as
{"eventType", "new", "old"}, whoever the writer is. pg_notify payloads are capped at 8000 bytes;
rows too large to fit are sent with content dropped (clients refetch the feed for the body).
"""

CHANGE_CHANNEL = "update_changes"

CREATE_NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_update_change() RETURNS trigger AS $$
DECLARE
    new_row jsonb := CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE to_jsonb(NEW) END;
    old_row jsonb := CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE to_jsonb(OLD) END;
    payload text;
BEGIN
    payload := jsonb_build_object('eventType', TG_OP, 'new', new_row, 'old', old_row)::text;
    IF octet_length(payload) > 7900 THEN
        payload := jsonb_build_object(
            'eventType', TG_OP,
            'new', new_row - 'content',
            'old', old_row - 'content',
            'truncated', true
        )::text;
    END IF;
    PERFORM pg_notify('update_changes', payload);
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""

CREATE_NOTIFY_TRIGGER = """
CREATE TRIGGER updates_notify_change
AFTER INSERT OR UPDATE OR DELETE ON updates
FOR EACH ROW EXECUTE FUNCTION notify_update_change();
"""

DROP_NOTIFY_TRIGGER = "DROP TRIGGER IF EXISTS updates_notify_change ON updates;"
DROP_NOTIFY_FUNCTION = "DROP FUNCTION IF EXISTS notify_update_change();"


def install_change_feed(connection) -> None:
    """Create the notify function and trigger (Postgres only). Safe to re-run."""
    connection.exec_driver_sql(DROP_NOTIFY_TRIGGER)
    connection.exec_driver_sql(CREATE_NOTIFY_FUNCTION)
    connection.exec_driver_sql(CREATE_NOTIFY_TRIGGER)
