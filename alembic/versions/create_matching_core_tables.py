from alembic import op

revision = "0001_matching_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            display_name VARCHAR(120),
            is_online BOOLEAN NOT NULL DEFAULT FALSE,
            last_active_at BIGINT,
            last_lat DOUBLE PRECISION,
            last_lng DOUBLE PRECISION,
            last_location_at BIGINT,
            notify_radius_km INTEGER,
            notify_min_price NUMERIC(10, 2),
            notify_urgent_only BOOLEAN NOT NULL DEFAULT FALSE,
            max_push_per_hour INTEGER
        );

        CREATE INDEX IF NOT EXISTS ix_users_is_online ON users(is_online);

        CREATE TABLE IF NOT EXISTS trips (
            id SERIAL PRIMARY KEY,
            owner_id VARCHAR(64) NOT NULL,
            origin_label VARCHAR(255) NOT NULL,
            origin_lat DOUBLE PRECISION NOT NULL,
            origin_lng DOUBLE PRECISION NOT NULL,
            destination_label VARCHAR(255) NOT NULL,
            destination_lat DOUBLE PRECISION NOT NULL,
            destination_lng DOUBLE PRECISION NOT NULL,
            window_start_ts BIGINT NOT NULL,
            window_end_ts BIGINT NOT NULL,
            available_space VARCHAR(10) NOT NULL DEFAULT 'medium',
            max_weight_kg DOUBLE PRECISION NOT NULL,
            max_volume_dm3 DOUBLE PRECISION NOT NULL,
            max_detour_minutes INTEGER NOT NULL DEFAULT 15,
            route_distance_km DOUBLE PRECISION,
            route_duration_minutes DOUBLE PRECISION,
            status VARCHAR(20) NOT NULL DEFAULT 'draft',
            created_at BIGINT NOT NULL,
            updated_at BIGINT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS ix_trips_status_window_start ON trips(status, window_start_ts);
        CREATE INDEX IF NOT EXISTS ix_trips_owner_status ON trips(owner_id, status);

        CREATE TABLE IF NOT EXISTS parcels (
            id SERIAL PRIMARY KEY,
            owner_id VARCHAR(64) NOT NULL,
            origin_label VARCHAR(255) NOT NULL,
            origin_lat DOUBLE PRECISION NOT NULL,
            origin_lng DOUBLE PRECISION NOT NULL,
            destination_label VARCHAR(255) NOT NULL,
            destination_lat DOUBLE PRECISION NOT NULL,
            destination_lng DOUBLE PRECISION NOT NULL,
            size VARCHAR(10) NOT NULL DEFAULT 'small',
            weight_kg DOUBLE PRECISION NOT NULL,
            volume_dm3 DOUBLE PRECISION NOT NULL,
            description TEXT,
            urgency_level VARCHAR(10) NOT NULL DEFAULT 'normal',
            fragile BOOLEAN NOT NULL DEFAULT FALSE,
            insurance_value NUMERIC(12, 2),
            proposed_price NUMERIC(10, 2),
            preferred_window_start_ts BIGINT NOT NULL,
            preferred_window_end_ts BIGINT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'draft',
            created_at BIGINT NOT NULL,
            updated_at BIGINT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS ix_parcels_status_window_start ON parcels(status, preferred_window_start_ts);
        CREATE INDEX IF NOT EXISTS ix_parcels_owner_status ON parcels(owner_id, status);

        CREATE TABLE IF NOT EXISTS matches (
            id SERIAL PRIMARY KEY,
            trip_id INTEGER NOT NULL REFERENCES trips(id) ON DELETE CASCADE,
            parcel_id INTEGER NOT NULL REFERENCES parcels(id) ON DELETE CASCADE,
            status VARCHAR(20) NOT NULL DEFAULT 'candidate',
            score INTEGER NOT NULL,
            detour_minutes INTEGER NOT NULL,
            detour_distance_km DOUBLE PRECISION NOT NULL,
            route_distance_km DOUBLE PRECISION NOT NULL DEFAULT 0,
            route_duration_minutes DOUBLE PRECISION NOT NULL DEFAULT 0,
            total_amount NUMERIC(10, 2) NOT NULL,
            pricing_estimate JSON NOT NULL,
            ranking_reason TEXT NOT NULL,
            expires_at BIGINT,
            created_at BIGINT NOT NULL,
            updated_at BIGINT NOT NULL,
            CONSTRAINT uq_matches_trip_parcel UNIQUE (trip_id, parcel_id)
        );

        CREATE INDEX IF NOT EXISTS ix_matches_trip_score ON matches(trip_id, score);
        CREATE INDEX IF NOT EXISTS ix_matches_parcel_score ON matches(parcel_id, score);
        CREATE INDEX IF NOT EXISTS ix_matches_status ON matches(status);

        CREATE TABLE IF NOT EXISTS trip_sessions (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            origin_label VARCHAR(255) NOT NULL,
            origin_city VARCHAR(120),
            origin_lat DOUBLE PRECISION NOT NULL,
            origin_lng DOUBLE PRECISION NOT NULL,
            destination_label VARCHAR(255) NOT NULL,
            destination_city VARCHAR(120),
            destination_lat DOUBLE PRECISION NOT NULL,
            destination_lng DOUBLE PRECISION NOT NULL,
            deviation_max_minutes INTEGER NOT NULL,
            opportunities_enabled BOOLEAN NOT NULL DEFAULT TRUE,
            status VARCHAR(10) NOT NULL DEFAULT 'ACTIVE',
            last_lat DOUBLE PRECISION,
            last_lng DOUBLE PRECISION,
            last_location_ts BIGINT,
            matches_count_cache INTEGER NOT NULL DEFAULT 0,
            last_notified_at BIGINT,
            started_at BIGINT NOT NULL,
            ended_at BIGINT,
            updated_at BIGINT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS ix_trip_sessions_user_status ON trip_sessions(user_id, status);

        CREATE TABLE IF NOT EXISTS escalations (
            id SERIAL PRIMARY KEY,
            parcel_id INTEGER NOT NULL REFERENCES parcels(id) ON DELETE CASCADE,
            stage INTEGER NOT NULL,
            due_at BIGINT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            sent_count INTEGER,
            attempts INTEGER NOT NULL DEFAULT 0,
            claimed_at BIGINT,
            created_at BIGINT NOT NULL,
            updated_at BIGINT NOT NULL,
            CONSTRAINT uq_escalations_parcel_stage UNIQUE (parcel_id, stage)
        );

        CREATE INDEX IF NOT EXISTS ix_escalations_status_due_at ON escalations(status, due_at);
        CREATE INDEX IF NOT EXISTS ix_escalations_parcel_status ON escalations(parcel_id, status);

        CREATE TABLE IF NOT EXISTS notification_logs (
            id SERIAL PRIMARY KEY,
            parcel_id INTEGER NOT NULL REFERENCES parcels(id) ON DELETE CASCADE,
            recipient_id VARCHAR(64) NOT NULL,
            stage INTEGER NOT NULL,
            radius_km DOUBLE PRECISION NOT NULL,
            sent_at BIGINT NOT NULL,
            delivery_status VARCHAR(20) NOT NULL DEFAULT 'claimed',
            provider_response VARCHAR(255),
            error VARCHAR(255),
            CONSTRAINT uq_notification_logs_parcel_recipient UNIQUE (parcel_id, recipient_id)
        );

        CREATE INDEX IF NOT EXISTS ix_notification_logs_recipient_sent_at ON notification_logs(recipient_id, sent_at);

        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            recipient_id VARCHAR(64) NOT NULL,
            actor_id VARCHAR(64),
            notif_type VARCHAR(40) NOT NULL,
            title VARCHAR(255) NOT NULL,
            message TEXT NOT NULL,
            trip_id INTEGER,
            parcel_id INTEGER,
            match_id INTEGER,
            read_at BIGINT,
            created_at BIGINT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS ix_notifications_recipient_created_at ON notifications(recipient_id, created_at);
        CREATE INDEX IF NOT EXISTS ix_notifications_notif_type ON notifications(notif_type);
    """)


def downgrade():
    op.execute("""
        DROP TABLE IF EXISTS notifications CASCADE;
        DROP TABLE IF EXISTS notification_logs CASCADE;
        DROP TABLE IF EXISTS escalations CASCADE;
        DROP TABLE IF EXISTS trip_sessions CASCADE;
        DROP TABLE IF EXISTS matches CASCADE;
        DROP TABLE IF EXISTS parcels CASCADE;
        DROP TABLE IF EXISTS trips CASCADE;
        DROP TABLE IF EXISTS users CASCADE;
    """)
