"""Restock engine hata tipleri."""

from __future__ import annotations


class RestockEngineError(Exception):
    """Tüm engine hataları için temel sınıf."""
    pass


class ValidationError(RestockEngineError):
    """Hatalı girdi: negatif miktar, min > max, geçersiz tarih vb."""
    pass


class InsufficientStockError(ValidationError):
    """Hareket kaynak stoku sıfırın altına düşürürdü."""
    pass


class NotFoundError(RestockEngineError):
    """Kayıt bulunamadı."""
    pass


class DuplicateAlertError(RestockEngineError):
    """Aynı (lokasyon, ürün, tip) için açık bir uyarı zaten var."""

    def __init__(self, location_id: str, product_id: str, alert_type: str, existing_alert_id: str):
        super().__init__(
            f"Açık {alert_type} uyarısı zaten var: {location_id}/{product_id} ({existing_alert_id})"
        )
        self.location_id = location_id
        self.product_id = product_id
        self.alert_type = alert_type
        self.existing_alert_id = existing_alert_id


class NotificationDeliveryError(RestockEngineError):
    """Bildirim sağlayıcısı mesajı teslim edemedi."""
    pass


class InvalidTransitionError(RestockEngineError):
    """Uyarı kaydı için izin verilmeyen durum geçişi."""

    def __init__(self, alert_id: str, current: str, target: str):
        super().__init__(f"Geçersiz durum geçişi: {alert_id} {current} -> {target}")
        self.alert_id = alert_id
        self.current = current
        self.target = target


class ConcurrentModificationError(RestockEngineError):
    """Kayıt başka bir yazıcı tarafından değiştirildi ya da kilit alınamadı."""
    pass
