from datetime import datetime
from vault_guardian import db


class BackupSettings(db.Model):
    """Persisted backup configuration and schedule state (single row)"""
    __tablename__ = 'backup_settings'

    id = db.Column(db.Integer, primary_key=True)
    backup_path = db.Column(db.String(1024), nullable=False, default='')
    secondary_backup_path = db.Column(db.String(1024), nullable=False, default='')
    auto_backup_interval = db.Column(db.Float, nullable=False)  # Hours
    max_backup_count = db.Column(db.Integer, nullable=False)  # 0 = keep all
    secondary_max_backup_count = db.Column(db.Integer, nullable=False)  # 0 = keep all
    compression_level = db.Column(db.Integer, nullable=False)  # 0-9
    last_backup_time = db.Column(db.DateTime)  # Naive UTC
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<BackupSettings path={self.backup_path!r} interval={self.auto_backup_interval}h>'
