from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


def _manager(request: Request):
    manager = getattr(request.app.state, 'lifecycle_manager', None)
    if manager is None:
        raise HTTPException(status_code=503, detail='RELAY_NOT_STARTED')
    return manager


@router.get('/health')
def health(request: Request):
    manager = _manager(request)
    worker = getattr(request.app.state, 'relay_worker_thread', None)
    return {
        'status': 'ok' if worker is not None and worker.is_alive() else 'degraded',
        'producer_state': manager.state.value,
    }


@router.get('/metrics/relay')
def relay_metrics(request: Request):
    return _manager(request).metrics()
