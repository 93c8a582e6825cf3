"""
Ядро бронирования слотов.

Отвечает за:
- Резервирование мест в слотах с ограниченной вместимостью
- Расчет цены по цепочке стратегий
- Жизненный цикл бронирования и сбор за отмену
"""
