from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from temporalio.client import Client as TemporalClient
from temporalio.exceptions import WorkflowAlreadyStartedError

from adjudicator.core.auth import get_current_user
from adjudicator.core.config import settings
from adjudicator.core.database import get_async_session as get_session
from adjudicator.core.llm_client import LLMClient, create_llm_client
from adjudicator.core.temporal_client import get_temporal_client
from adjudicator.schemas.auth import CurrentUser
from adjudicator.schemas.pipeline import AsyncProcessingAccepted
from adjudicator.schemas.responses import ApiResponse
from adjudicator.services.claims.results_service import ClaimResultsService
from adjudicator.services.pipeline.claim_pipeline import ClaimPipeline
from adjudicator.temporal.constants import CLAIMS_TASK_QUEUE, workflow_id_for
from adjudicator.temporal.workflows.claim_pipeline import ClaimPipelineWorkflow
from adjudicator.utils.logging import get_logger
from adjudicator.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


def get_llm_client() -> LLMClient:
    return create_llm_client(settings.llm)


async def get_claim_pipeline(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
) -> ClaimPipeline:
    return ClaimPipeline(db_session, llm_client, settings.pipeline)


async def get_results_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ClaimResultsService:
    return ClaimResultsService(db_session)


@router.post(
    "/{claim_id}/process",
    response_model=ApiResponse,
    summary="Run the adjudication pipeline for a claim",
    operation_id="process_claim",
)
async def process_claim(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    pipeline: Annotated[ClaimPipeline, Depends(get_claim_pipeline)],
) -> ApiResponse:
    """Process a claim synchronously.

    A claim waiting on document reupload returns ``status: false`` with
    the documents to upload again.
    """
    LOGGER.info(
        "Processing claim",
        extra={"claim_id": claim_id, "user_id": str(current_user.id)},
    )
    result = await pipeline.execute(claim_id, current_user)
    return create_api_response(
        data=result,
        message=result.message,
        status=result.success,
        request=request,
    )


@router.post(
    "/{claim_id}/process/async",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a claim to the durable pipeline",
    operation_id="process_claim_async",
)
async def process_claim_async(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    results_service: Annotated[ClaimResultsService, Depends(get_results_service)],
    temporal_client: Annotated[TemporalClient, Depends(get_temporal_client)],
):
    """Start ``ClaimPipelineWorkflow`` for a claim and return immediately."""
    claim = await results_service.authorize(claim_id, current_user)
    workflow_id = workflow_id_for(str(claim.id))

    try:
        await temporal_client.start_workflow(
            ClaimPipelineWorkflow.run,
            {"claim_id": str(claim.id)},
            id=workflow_id,
            task_queue=CLAIMS_TASK_QUEUE,
        )
        message = "Claim submitted for processing"
    except WorkflowAlreadyStartedError:
        LOGGER.info(f"Workflow {workflow_id} already running", extra={"claim_id": str(claim.id)})
        message = "Claim is already being processed"

    data = AsyncProcessingAccepted(workflow_id=workflow_id, claim_id=claim.id, task_queue=CLAIMS_TASK_QUEUE)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=create_api_response(data=data, message=message, request=request),
    )


@router.get(
    "/{claim_id}/results",
    response_model=ApiResponse,
    summary="Get the latest pipeline results for a claim",
    operation_id="get_claim_results",
)
async def get_claim_results(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    results_service: Annotated[ClaimResultsService, Depends(get_results_service)],
) -> ApiResponse:
    results = await results_service.execute(claim_id, current_user)
    return create_api_response(data=results, message="Claim results retrieved", request=request)
