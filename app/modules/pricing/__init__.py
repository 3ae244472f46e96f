"""
Módulo de precios

- engine.calculate_total: cobro de una sesión (función pura)
- rules: tabla de descuentos por modelo de negocio y categoría
- validators: integridad de descuentos y de cuentas divididas
- service.PricingService: integra el motor con la base de datos y la auditoría
"""
