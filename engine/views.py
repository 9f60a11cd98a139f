import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from strand import run_web

logger = logging.getLogger(__name__)

@csrf_exempt
@require_POST
def run_strand(request):
    code = request.POST.get("code", "")
    output, trace, error = run_web(
        code,
        max_loop_iterations=settings.STRAND_MAX_LOOP_ITERATIONS,
    )
    if error:
        logger.info("Script run failed: %s", error.splitlines()[0])
    return JsonResponse({"output": output, "trace": trace, "error": error})
