"""
CI/CD Config Generator

Pipeline descriptors that run an exported Playwright suite on a
CI platform. Keyed only on the platform name; unknown platforms get
the GitHub Actions workflow.
"""

from typing import Dict, List

DEFAULT_PLATFORM = "github"

GITHUB_ACTIONS = """name: Playwright Tests

on:
  push:
    branches: [ main, develop ]
  pull_request:
    branches: [ main ]
  schedule:
    - cron: '0 2 * * *'  # Daily at 2 AM

jobs:
  test:
    timeout-minutes: 60
    runs-on: ubuntu-latest
    strategy:
      matrix:
        browser: [chromium, firefox, webkit]

    steps:
    - uses: actions/checkout@v4

    - uses: actions/setup-node@v4
      with:
        node-version: 18
        cache: 'npm'

    - name: Install dependencies
      run: npm ci

    - name: Install Playwright Browsers
      run: npx playwright install --with-deps ${{ matrix.browser }}

    - name: Run Playwright tests
      run: npx playwright test --project=${{ matrix.browser }}
      env:
        PLAYWRIGHT_JUNIT_OUTPUT_NAME: results.xml

    - name: Upload test results
      uses: actions/upload-artifact@v4
      if: always()
      with:
        name: playwright-report-${{ matrix.browser }}
        path: |
          playwright-report/
          test-results/
        retention-days: 30

    - name: Publish Test Results
      uses: dorny/test-reporter@v1
      if: success() || failure()
      with:
        name: Playwright Tests (${{ matrix.browser }})
        path: results.xml
        reporter: jest-junit
"""

GITLAB_CI = """stages:
  - test
  - report

variables:
  npm_config_cache: "$CI_PROJECT_DIR/.npm"
  PLAYWRIGHT_BROWSERS_PATH: "$CI_PROJECT_DIR/ms-playwright"

cache:
  paths:
    - .npm/
    - node_modules/
    - ms-playwright/

playwright-tests:
  stage: test
  image: mcr.microsoft.com/playwright:v1.40.0-focal
  parallel:
    matrix:
      - BROWSER: [chromium, firefox, webkit]
  script:
    - npm ci
    - npx playwright test --project=$BROWSER
  artifacts:
    when: always
    paths:
      - playwright-report/
      - test-results/
    expire_in: 1 week
    reports:
      junit: results.xml
"""

JENKINSFILE = """pipeline {
    agent any

    tools {
        nodejs '18'
    }

    environment {
        CI = 'true'
        PLAYWRIGHT_BROWSERS_PATH = './ms-playwright'
    }

    stages {
        stage('Install Dependencies') {
            steps {
                sh 'npm ci'
                sh 'npx playwright install --with-deps'
            }
        }

        stage('Run Tests') {
            parallel {
%(browser_stages)s
            }
        }
    }

    post {
        always {
            publishHTML([
                allowMissing: false,
                alwaysLinkToLastBuild: false,
                keepAll: true,
                reportDir: 'playwright-report',
                reportFiles: 'index.html',
                reportName: 'Playwright Test Report'
            ])

            archiveArtifacts artifacts: 'test-results/**/*', allowEmptyArchive: true
        }
    }
}
"""

JENKINS_STAGE = """                stage('%(title)s') {
                    steps {
                        sh 'npx playwright test --project=%(browser)s'
                    }
                    post {
                        always {
                            junit 'results.xml'
                        }
                    }
                }"""

AZURE_PIPELINES = """trigger:
- main
- develop

pool:
  vmImage: 'ubuntu-latest'

variables:
  npm_config_cache: $(Pipeline.Workspace)/.npm

strategy:
  matrix:
    chromium:
      browserName: 'chromium'
    firefox:
      browserName: 'firefox'
    webkit:
      browserName: 'webkit'

steps:
- task: NodeTool@0
  inputs:
    versionSpec: '18'
  displayName: 'Install Node.js'

- script: |
    npm ci
  displayName: 'Install dependencies'

- script: |
    npx playwright install --with-deps $(browserName)
  displayName: 'Install Playwright browsers'

- script: |
    npx playwright test --project=$(browserName)
  displayName: 'Run Playwright tests'

- task: PublishTestResults@2
  condition: always()
  inputs:
    testResultsFormat: 'JUnit'
    testResultsFiles: 'results.xml'
    testRunTitle: 'Playwright Tests ($(browserName))'
"""

CIRCLECI = """version: 2.1

orbs:
  node: circleci/node@5.0.2

executors:
  playwright-executor:
    docker:
      - image: mcr.microsoft.com/playwright:v1.40.0-focal
    working_directory: ~/project

jobs:
  test:
    executor: playwright-executor
    parameters:
      browser:
        type: string
    steps:
      - checkout
      - node/install-packages:
          pkg-manager: npm
      - run:
          name: Install Playwright browsers
          command: npx playwright install --with-deps << parameters.browser >>
      - run:
          name: Run Playwright tests
          command: npx playwright test --project=<< parameters.browser >>
      - store_test_results:
          path: test-results
      - store_artifacts:
          path: playwright-report
          destination: playwright-report-<< parameters.browser >>

workflows:
  test-workflow:
    jobs:
      - test:
          matrix:
            parameters:
              browser: ["chromium", "firefox", "webkit"]
"""

CONFIG_FILENAMES: Dict[str, str] = {
    "github": ".github/workflows/playwright.yml",
    "gitlab": ".gitlab-ci.yml",
    "jenkins": "Jenkinsfile",
    "azure": "azure-pipelines.yml",
    "circleci": ".circleci/config.yml",
}

PIPELINE_BROWSERS = ["chromium", "firefox", "webkit"]


class CICDConfigGenerator:
    """Renders CI pipeline files per target platform"""

    def __init__(self):
        self._renderers = {
            "github": lambda: GITHUB_ACTIONS,
            "gitlab": lambda: GITLAB_CI,
            "jenkins": self._render_jenkinsfile,
            "azure": lambda: AZURE_PIPELINES,
            "circleci": lambda: CIRCLECI,
        }

    @staticmethod
    def normalize_platform(platform: str) -> str:
        key = (platform or "").strip().lower()
        return key if key in CONFIG_FILENAMES else DEFAULT_PLATFORM

    def supported_platforms(self) -> List[str]:
        return list(CONFIG_FILENAMES)

    def generate_config(self, platform: str) -> str:
        return self._renderers[self.normalize_platform(platform)]()

    def get_config_filename(self, platform: str) -> str:
        return CONFIG_FILENAMES[self.normalize_platform(platform)]

    def _render_jenkinsfile(self) -> str:
        stages = "\n".join(
            JENKINS_STAGE % {"title": browser.capitalize(), "browser": browser}
            for browser in PIPELINE_BROWSERS
        )
        return JENKINSFILE % {"browser_stages": stages}
