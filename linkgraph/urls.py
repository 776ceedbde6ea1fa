"""URL configuration for the linkgraph app.

This module defines the JSON endpoints of the app. It also specifies the
``app_name`` to allow namespacing from the project URL configuration.
"""

from django.urls import path

from . import views

app_name = 'linkgraph'

urlpatterns = [
    path('nodes/<int:node_id>/process/', views.process_node, name='process_node'),
    path('nodes/<int:node_id>/health/', views.node_health, name='node_health'),
    path('nodes/<int:node_id>/suggestions/', views.node_suggestions, name='node_suggestions'),
    path('batches/', views.process_batch, name='process_batch'),
    path('platforms/<int:platform_id>/report/', views.platform_report, name='platform_report'),
    path('platforms/<int:platform_id>/orphans/', views.platform_orphans, name='platform_orphans'),
    path('platforms/<int:platform_id>/dead-ends/', views.platform_dead_ends, name='platform_dead_ends'),
    path('platforms/<int:platform_id>/weakly-connected/', views.platform_weakly_connected, name='platform_weakly_connected'),
    path('platforms/<int:platform_id>/suggestions/', views.platform_suggestions, name='platform_suggestions'),
    path('platforms/<int:platform_id>/repair/', views.platform_repair, name='platform_repair'),
    path('platforms/<int:platform_id>/pagerank/', views.platform_pagerank, name='platform_pagerank'),
    path('platforms/<int:platform_id>/rules/', views.platform_rules, name='platform_rules'),
    path('rules/validate/', views.validate_rule, name='validate_rule'),
]
