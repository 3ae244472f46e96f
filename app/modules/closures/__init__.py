"""
Módulo de cierre de turno (Z-Report)

ENTIDADES PRINCIPALES:
- DailyBalance: snapshot inmutable que consolida las sesiones cerradas

FUNCIONALIDADES:
- Consolidación atómica de sesiones (cada sesión se liquida una sola vez)
- Arqueo ciego con alerta de descuadre
- Sello de integridad SHA-256 registrado en la bitácora
"""
