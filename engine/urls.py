from django.urls import path
from .views import run_strand
from django.shortcuts import render

def index(request):
    return render(request, "engine/index.html")

urlpatterns = [
    path("", index, name="engine_home"),          # playground page
    path("run/", run_strand, name="run_strand"),  # execute code
]
