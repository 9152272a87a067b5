"""Configuration centralisée Celery pour les tâches asynchrones.

Ce module définit la configuration globale de Celery: acquittement tardif,
timeouts et limites de connexion au broker. Les cycles de diffusion ne sont pas
rejoués par Celery: la livraison est best-effort et le ré-essai est géré par le
dispatcher lui-même.
"""

# ============================================================
# Module : tagfeed/app/celeryconfig.py
# Objet  : Configuration centralisée Celery (acks, timeouts).
# ============================================================

from __future__ import annotations

task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1
task_time_limit = 300  # secondes
task_soft_time_limit = 240  # secondes
broker_pool_limit = 10
task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]
timezone = "UTC"
