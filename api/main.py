"""
FastAPI Server for the Venture Canvas AI assist
"""
import asyncio
import threading
from datetime import datetime
from typing import Optional, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from agents.action_catalog import action_catalog
from agents.context_builder import context_builder
from config import settings
from graph.workflow import workflow
from schemas.canvas_schemas import ActionOutcome
from utils.answer_io import export_answers, load_into
from utils.answer_store import answer_store
from utils.exceptions import AssistError
from utils.field_registry import field_registry
from utils.llm_client import llm_client
from utils.logger import logger


# Request/Response models
class AnswerUpdate(BaseModel):
    """Request model for editing one answer"""
    value: str = Field(..., description="New answer text (Markdown allowed)")


class ActionRequest(BaseModel):
    """Request model for running an AI action"""
    brief: Optional[str] = Field(None, description="Instruction for the autocompletar action")


class StepRequest(BaseModel):
    """Request model for moving to another step"""
    step: int


class FieldInfo(BaseModel):
    field_id: str
    area: str
    question: str
    help: str


class PageInfo(BaseModel):
    index: int
    title: str
    fields: List[FieldInfo]
    action: Optional[str] = None


class FormResponse(BaseModel):
    """Form definition with resolved field ids"""
    pages: List[PageInfo]
    step_labels: List[str]
    summary_step_index: int
    actions: List[str]


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    llm_available: bool


# Create FastAPI app
app = FastAPI(
    title="Venture Canvas AI Assist",
    description="Business-plan canvas with LLM-assisted field completion",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Single in-flight flag for page-targeted actions; the brief-driven action may overlap
_page_action_lock = threading.Lock()


@app.exception_handler(AssistError)
async def assist_error_handler(request: Request, exc: AssistError):
    logger.warning(f"API: {exc.code}: {exc}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error_code": exc.code, "message": exc.user_message},
    )


@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    logger.info("FastAPI server starting up")
    try:
        workflow.compile()
        logger.info("Workflow compiled successfully")
    except Exception as e:
        logger.error(f"Failed to compile workflow: {e}")


@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint"""
    return {
        "service": "Venture Canvas AI Assist",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        version="1.0.0",
        timestamp=datetime.utcnow().isoformat(),
        llm_available=llm_client.is_available()
    )


@app.get("/form", response_model=FormResponse)
async def get_form():
    """Form pages with their field ids and the AI action available on each step"""
    pages = []
    for index, page in enumerate(field_registry.pages):
        descriptors = [d for d in field_registry.descriptors if d.page_index == index]
        action = action_catalog.for_step(index)
        pages.append(PageInfo(
            index=index,
            title=page.title,
            fields=[
                FieldInfo(field_id=d.field_id, area=item.area, question=item.question, help=item.help)
                for d, item in zip(descriptors, page.items)
            ],
            action=action.name if action else None,
        ))
    return FormResponse(
        pages=pages,
        step_labels=field_registry.step_labels(),
        summary_step_index=field_registry.summary_step_index,
        actions=action_catalog.names(),
    )


@app.get("/answers")
async def get_answers():
    """Current answers and step"""
    return {"current_step": answer_store.current_step, "answers": answer_store.snapshot()}


@app.put("/answers/{field_id}")
async def put_answer(field_id: str, update: AnswerUpdate):
    """Edit one answer"""
    if field_id not in field_registry:
        raise HTTPException(status_code=404, detail=f"Unknown field: {field_id}")
    answer_store.set_answer(field_id, update.value)
    return {"field_id": field_id, "value": update.value}


@app.post("/step")
async def go_to_step(request: StepRequest):
    """Move to a step, clamped into the form range"""
    return {"current_step": answer_store.go_to_step(request.step)}


@app.get("/context")
async def get_context(until_step: Optional[int] = None):
    """Prompt context built from answers before ``until_step`` (default: current step)"""
    until = answer_store.current_step if until_step is None else until_step
    return {"until_step": until, "context": context_builder.build(answer_store.snapshot(), until)}


@app.post("/actions/{action_name}", response_model=ActionOutcome)
async def run_action(action_name: str, request: Optional[ActionRequest] = None):
    """
    Run an AI action and merge its result into the answers

    Page-targeted actions are serialized by a single in-flight flag (409 when
    busy); the brief-driven action runs independently.
    """
    action = action_catalog.get(action_name)
    if action is None:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action_name}")

    brief = request.brief if request else None
    loop = asyncio.get_event_loop()

    if not action.page_targeted:
        return await loop.run_in_executor(None, workflow.run_action, action_name, answer_store, brief)

    if not _page_action_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="Another AI research is already running")
    try:
        return await loop.run_in_executor(None, workflow.run_action, action_name, answer_store, brief)
    finally:
        _page_action_lock.release()


@app.get("/export")
async def export_canvas():
    """Download the answer set as a canvas file"""
    payload = export_answers(answer_store)
    return JSONResponse(
        content=payload,
        headers={"Content-Disposition": f'attachment; filename="{settings.EXPORT_FILENAME}"'},
    )


@app.post("/import")
async def import_canvas(request: Request):
    """Replace the answer set with an exported canvas file"""
    body = await request.body()
    imported = load_into(answer_store, body)
    return {
        "success": True,
        "message": "Archivo importado correctamente.",
        "current_step": imported.current_step,
        "answers": len(imported.answers),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
    )
