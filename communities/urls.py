from django.urls import re_path

from . import views

app_name = 'communities'

# Trailing slash is optional; POSTs are not redirected by APPEND_SLASH.
SLUG = r'^(?P<slug>[-a-zA-Z0-9_]+)'

urlpatterns = [
    # Pre-registration lifecycle
    re_path(SLUG + r'/join-pre-registration/?$', views.join_pre_registration, name='join_pre_registration'),
    re_path(SLUG + r'/confirm-pre-registration/?$', views.confirm_pre_registration, name='confirm_pre_registration'),
    re_path(SLUG + r'/cancel-pre-registration/?$', views.cancel_pre_registration, name='cancel_pre_registration'),
    re_path(SLUG + r'/membership/?$', views.membership_status, name='membership'),
]
