from typing import Any, Dict

IMAGE_DEFINITIONS_FILE = "imagedefinitions.json"


def create_build_spec() -> Dict[str, Any]:
    """
    Build specification for the image build project.

    Expects ``ECR_REPO`` (repository URI) and ``CONTAINER_NAME`` in the build
    environment. The ``imagedefinitions.json`` artifact names the container,
    which has to match the container of the Fargate task for the ECS deploy
    action.
    """
    return {
        "version": "0.2",
        "phases": {
            "install": {
                "runtime-versions": {"java": "corretto17"},
                "commands": ["java -version"],
                "finally": ["echo Done installing deps"],
            },
            "pre_build": {
                "commands": [
                    "echo Logging in to Amazon ECR...",
                    "aws ecr get-login-password --region $AWS_DEFAULT_REGION"
                    " | docker login --username AWS --password-stdin ${ECR_REPO%%/*}",
                    "COMMIT_HASH=$(echo $CODEBUILD_RESOLVED_SOURCE_VERSION | cut -c 1-7)",
                    "IMAGE_TAG=${COMMIT_HASH:=latest}",
                ]
            },
            "build": {
                "commands": [
                    "echo Build started on `date`",
                    "./mvnw clean package",
                    "echo Building Docker Image $ECR_REPO:latest",
                    "docker build -f docker/Dockerfile -t $ECR_REPO:latest .",
                    "echo Tagging Docker Image $ECR_REPO:latest with $ECR_REPO:$IMAGE_TAG",
                    "docker tag $ECR_REPO:latest $ECR_REPO:$IMAGE_TAG",
                    "echo Pushing Docker Image to $ECR_REPO:latest and $ECR_REPO:$IMAGE_TAG",
                    "docker push $ECR_REPO:latest",
                    "docker push $ECR_REPO:$IMAGE_TAG",
                ],
                "finally": ["echo Done building code"],
            },
            "post_build": {
                "commands": [
                    f"echo Writing {IMAGE_DEFINITIONS_FILE}",
                    "printf '[{\"name\":\"%s\",\"imageUri\":\"%s\"}]' "
                    f'"$CONTAINER_NAME" "$ECR_REPO:$IMAGE_TAG" > {IMAGE_DEFINITIONS_FILE}',
                    "echo Build completed on `date`",
                ]
            },
        },
        "artifacts": {"files": [IMAGE_DEFINITIONS_FILE]},
        "cache": {"paths": ["/root/.m2/**/*"]},
    }
