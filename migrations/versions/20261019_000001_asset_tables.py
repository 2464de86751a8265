from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    asset_kind_enum = sa.Enum("image", "video", name="assetkind")

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("original_name", sa.String(length=1024), nullable=False),
        sa.Column("stored_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=2048), nullable=False),
        sa.Column("thumbnail_path", sa.String(length=2048), nullable=True),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("kind", asset_kind_enum, nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_hash", name="uq_assets_content_hash"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_assets_kind_created_at", "assets", ["kind", "created_at"])

    op.create_table(
        "image_metadata",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("make", sa.String(length=255), nullable=True),
        sa.Column("model", sa.String(length=255), nullable=True),
        sa.Column("software", sa.String(length=255), nullable=True),
        sa.Column("captured_at", sa.String(length=64), nullable=True),
        sa.Column("exposure_time", sa.String(length=32), nullable=True),
        sa.Column("f_number", sa.Float(), nullable=True),
        sa.Column("iso", sa.Integer(), nullable=True),
        sa.Column("focal_length", sa.Float(), nullable=True),
        sa.Column("lens_make", sa.String(length=255), nullable=True),
        sa.Column("lens_model", sa.String(length=255), nullable=True),
        sa.Column("orientation", sa.Integer(), nullable=True),
        sa.Column("gps_latitude", sa.Float(), nullable=True),
        sa.Column("gps_longitude", sa.Float(), nullable=True),
        sa.Column("color_space", sa.String(length=64), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("raw_exif", sa.JSON(), nullable=True),
        sa.UniqueConstraint("asset_id", name="uq_image_metadata_asset_id"),
    )
    op.create_index("ix_image_metadata_make_model", "image_metadata", ["make", "model"])
    op.create_index("ix_image_metadata_captured_at", "image_metadata", ["captured_at"])
    op.create_index("ix_image_metadata_gps", "image_metadata", ["gps_latitude", "gps_longitude"])

    op.create_table(
        "video_metadata",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("video_codec", sa.String(length=64), nullable=True),
        sa.Column("video_bitrate", sa.BigInteger(), nullable=True),
        sa.Column("audio_codec", sa.String(length=64), nullable=True),
        sa.Column("audio_bitrate", sa.BigInteger(), nullable=True),
        sa.Column("audio_sample_rate", sa.Integer(), nullable=True),
        sa.Column("audio_channels", sa.Integer(), nullable=True),
        sa.Column("frame_rate", sa.Float(), nullable=True),
        sa.Column("pixel_format", sa.String(length=64), nullable=True),
        sa.Column("color_space", sa.String(length=64), nullable=True),
        sa.Column("color_primaries", sa.String(length=64), nullable=True),
        sa.Column("color_transfer", sa.String(length=64), nullable=True),
        sa.Column("color_range", sa.String(length=32), nullable=True),
        sa.Column("is_hdr", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hdr_format", sa.String(length=32), nullable=True),
        sa.Column("bit_depth", sa.Integer(), nullable=True),
        sa.Column("streams_video", sa.Integer(), nullable=True),
        sa.Column("streams_audio", sa.Integer(), nullable=True),
        sa.Column("streams_subtitle", sa.Integer(), nullable=True),
        sa.Column("total_bitrate", sa.BigInteger(), nullable=True),
        sa.Column("raw_metadata", sa.JSON(), nullable=True),
        sa.UniqueConstraint("asset_id", name="uq_video_metadata_asset_id"),
    )
    op.create_index("ix_video_metadata_is_hdr", "video_metadata", ["is_hdr"])
    op.create_index("ix_video_metadata_video_codec", "video_metadata", ["video_codec"])


def downgrade() -> None:
    op.drop_index("ix_video_metadata_video_codec", table_name="video_metadata")
    op.drop_index("ix_video_metadata_is_hdr", table_name="video_metadata")
    op.drop_table("video_metadata")
    op.drop_index("ix_image_metadata_gps", table_name="image_metadata")
    op.drop_index("ix_image_metadata_captured_at", table_name="image_metadata")
    op.drop_index("ix_image_metadata_make_model", table_name="image_metadata")
    op.drop_table("image_metadata")
    op.drop_index("ix_assets_kind_created_at", table_name="assets")
    op.drop_table("assets")

    sa.Enum(name="assetkind").drop(op.get_bind(), checkfirst=True)
