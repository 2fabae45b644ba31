from fastapi import Depends, FastAPI, HTTPException

from codejudge.executor import Judge, get_judge, single_case_verdict
from codejudge.logger import logger
from codejudge.schemas import JudgeRequest, RunRequest, RunResponse, SubmissionResult

app = FastAPI(title='Code Judge')


@app.post('/judge', response_model=SubmissionResult)
def judge_submission(req: JudgeRequest, judge: Judge = Depends(get_judge)):
    try:
        return judge.judge(req.code, req.language, req.tests, req.limits)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Judging failed")
        raise HTTPException(status_code=500, detail='execution error')


@app.post('/run', response_model=RunResponse)
def run_code(req: RunRequest, judge: Judge = Depends(get_judge)):
    try:
        result = judge.run_one(req.code, req.language, req.input, req.expected_output, req.limits)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Run failed")
        raise HTTPException(status_code=500, detail='execution error')
    return RunResponse(verdict=single_case_verdict(result), result=result)
