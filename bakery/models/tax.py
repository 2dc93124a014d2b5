from datetime import datetime

from flask import current_app

from extensions import db


class TaxSetting(db.Model):
    """Single-row store for the tax configuration"""
    __tablename__ = 'tax_settings'

    id = db.Column(db.Integer, primary_key=True)
    default_tax_rate = db.Column(db.Float, nullable=False, default=0)
    tax_rates = db.Column(db.JSON, nullable=False, default=dict)
    exemptions = db.Column(db.JSON, nullable=False, default=list)
    regions = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_or_create(cls):
        """Return the settings row, creating it with defaults on first access"""
        setting = cls.query.order_by(cls.id).first()
        if setting is None:
            default_rate = float(current_app.config.get('DEFAULT_TAX_RATE', 0))
            setting = cls(
                default_tax_rate=default_rate,
                tax_rates={'EUR': default_rate, 'SYP': default_rate},
                exemptions=[],
                regions=[],
                is_active=True,
                version=1
            )
            db.session.add(setting)
            db.session.commit()
        return setting

    def find_region(self, name):
        for region in self.regions or []:
            if str(region.get('name', '')).lower() == str(name).lower():
                return region
        return None

    def to_dict(self):
        return {
            'default_tax_rate': self.default_tax_rate,
            'tax_rates': self.tax_rates or {},
            'exemptions': self.exemptions or [],
            'regions': self.regions or [],
            'is_active': self.is_active,
            'version': self.version,
            'updated_by': self.updated_by,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
